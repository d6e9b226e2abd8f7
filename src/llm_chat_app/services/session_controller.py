from __future__ import annotations

from llm_chat_app.database.models import MessageRecord, SessionRecord


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8, preview_chars: int = 140):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._preview_chars = preview_chars

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def resolve_id(self, sessions: list[SessionRecord], identifier: str) -> str | None:
        """Match a full id or an unambiguous id prefix."""
        wanted = identifier.strip()
        if not wanted:
            return None
        for session in sessions:
            if session.id == wanted:
                return session.id
        matches = [s.id for s in sessions if s.id.startswith(wanted)]
        if len(matches) > 1:
            raise ValueError(f"Ambiguous session id prefix: {wanted}")
        return matches[0] if matches else None

    def format_session_list_entry(self, session: SessionRecord, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        return (
            f"{self._line_prefix}{marker} {session.name} [{self.short_id(session.id)}] "
            f"(tokens={session.total_tokens:,}, updated={session.updated_at})"
        )

    def format_history_lines(self, messages: list[MessageRecord]) -> list[str]:
        lines: list[str] = []
        for message in messages:
            label = "summary" if message.is_summary else message.role
            lines.append(f"{self._line_prefix}[{label}] {self.preview(message.content)}")
            if message.file_paths:
                lines.append(f"{self._line_prefix}    attachments: {', '.join(message.file_paths)}")
        return lines

    def preview(self, text: str) -> str:
        flat = " ".join(text.split())
        if len(flat) <= self._preview_chars:
            return flat
        return flat[: self._preview_chars - 3] + "..."
