from __future__ import annotations

from dataclasses import dataclass, field

from llm_chat_app.database.models import MessageRecord, SessionRecord


@dataclass
class SendMessageRequest:
    message: str
    file_paths: list[str] = field(default_factory=list)
    session_id: str | None = None
    context_file_path: str | None = None


@dataclass(frozen=True)
class SendMessageResponse:
    response: str
    session_id: str
    token_count: int
    total_tokens: int


@dataclass(frozen=True)
class SessionDetail:
    session: SessionRecord
    messages: list[MessageRecord]
