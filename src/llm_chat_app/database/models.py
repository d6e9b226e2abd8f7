from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SessionRecord:
    id: str
    name: str
    total_tokens: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    role: str
    content: str
    file_paths: list[str] | None
    token_count: int
    is_summary: bool
    original_message_ids: list[str] | None
    is_deleted: bool
    created_at: str
