from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from llm_chat_app.app_config import AppConfig

# ChatError codes
PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
API_KEY_MISSING = "API_KEY_MISSING"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
CLAUDE_API_ERROR = "CLAUDE_API_ERROR"
SEND_MESSAGE_ERROR = "SEND_MESSAGE_ERROR"
SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
SEND_MESSAGE_FAILED = "SEND_MESSAGE_FAILED"


class ChatError(Exception):
    def __init__(self, message: str, code: str, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class ProviderResponse:
    content: str
    token_count: int


@runtime_checkable
class LLMProvider(Protocol):
    async def send_message(
        self,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> ProviderResponse:
        """Send an ordered conversation and return the generated reply.

        Each message is a dict with ``role``, ``content`` and optional
        ``file_paths``. Messages with role ``system`` are folded into the
        system prompt.
        """
        ...


def create_provider(config: AppConfig, api_key: str | None) -> LLMProvider:
    """Factory: build the Claude provider for the current settings."""
    if not api_key:
        raise ChatError("Anthropic API key is not configured", API_KEY_MISSING)
    from llm_chat_app.providers.claude_provider import ClaudeProvider
    return ClaudeProvider(
        api_key,
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        max_file_size=config.max_file_size,
    )
