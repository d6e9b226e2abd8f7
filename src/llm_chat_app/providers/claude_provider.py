import anthropic
from loguru import logger
from tenacity import retry

from llm_chat_app.provider import (
    CLAUDE_API_ERROR,
    EMPTY_RESPONSE,
    SEND_MESSAGE_ERROR,
    ChatError,
    ProviderResponse,
)
from llm_chat_app.providers.attachments import DEFAULT_MAX_FILE_SIZE, build_attachment_blocks
from llm_chat_app.providers.common import default_retry_kwargs


class ClaudeProvider:
    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_file_size = max_file_size

    def convert_messages(self, messages: list[dict]) -> tuple[str, list[dict]]:
        """Split system text from the turn list and attach files to user turns."""
        system_parts: list[str] = []
        converted: list[dict] = []
        for message in messages:
            role = message.get("role")
            content = message.get("content", "")
            if role == "system":
                system_parts.append(content)
            elif role == "user":
                blocks: list[dict] = [{"type": "text", "text": content}]
                file_paths = message.get("file_paths") or []
                if file_paths:
                    blocks.extend(build_attachment_blocks(file_paths, max_file_size=self._max_file_size))
                converted.append({"role": "user", "content": blocks})
            else:
                converted.append({"role": "assistant", "content": content})
        return "\n\n".join(p for p in system_parts if p), converted

    async def send_message(self, messages: list[dict], *, system_prompt: str = "") -> ProviderResponse:
        history_system, converted = self.convert_messages(messages)
        system = "\n\n".join(p for p in (system_prompt, history_system) if p)

        try:
            response = await self._create(system, converted)
        except ChatError:
            raise
        except anthropic.APIStatusError as ex:
            raise ChatError(f"Claude API error: {ex.message}", CLAUDE_API_ERROR, ex.status_code) from ex
        except anthropic.APIError as ex:
            raise ChatError(f"Claude API error: {ex.message}", CLAUDE_API_ERROR) from ex
        except Exception as ex:
            raise ChatError(f"Failed to send message: {ex}", SEND_MESSAGE_ERROR) from ex

        text = "".join(block.text for block in response.content or [] if block.type == "text")
        if not text:
            raise ChatError("Empty response from Claude", EMPTY_RESPONSE)
        usage = getattr(response, "usage", None)
        token_count = int(getattr(usage, "output_tokens", 0) or 0)
        return ProviderResponse(content=text, token_count=token_count)

    @retry(**default_retry_kwargs())
    async def _create(self, system: str, messages: list[dict]):
        logger.debug(
            f"API request: model={self._model}, max_tokens={self._max_tokens}, messages={len(messages)}"
        )
        kwargs = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={getattr(response, 'stop_reason', None)}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return response
