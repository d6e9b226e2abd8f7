from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from loguru import logger

from llm_chat_app.app_config import AppConfig
from llm_chat_app.database.connection import DatabaseConnection
from llm_chat_app.database.message_repository import MessageRepository
from llm_chat_app.database.models import MessageRecord, SessionRecord
from llm_chat_app.database.pruning import prune_sessions
from llm_chat_app.database.session_repository import SessionRepository
from llm_chat_app.provider import (
    PROVIDER_NOT_CONFIGURED,
    SEND_MESSAGE_FAILED,
    SESSION_NOT_FOUND,
    ChatError,
    LLMProvider,
)
from llm_chat_app.services.types import SendMessageRequest, SendMessageResponse, SessionDetail

DEFAULT_SESSION_TITLE = "New Chat"
_MAX_TITLE_CHARS = 50

_SUMMARIZE_PROMPT = """\
Summarize the following conversation between a user and an AI assistant so it
can replace the original messages as context for the rest of the chat.
Preserve precisely:
- The user's goals, questions and any specific instructions
- Decisions made and the reasoning behind them
- Names, numbers, file names, code identifiers and URLs that may matter later
- Open questions and the current state of the discussion

Format as a concise narrative summary.

---
CONVERSATION:

"""


def generate_session_title(message: str) -> str:
    clean = " ".join(message.split())
    if not clean:
        return DEFAULT_SESSION_TITLE
    if len(clean) <= _MAX_TITLE_CHARS:
        return clean
    return clean[: _MAX_TITLE_CHARS - 3] + "..."


def to_provider_messages(records: list[MessageRecord]) -> list[dict]:
    messages: list[dict] = []
    for record in records:
        message: dict = {"role": record.role, "content": record.content}
        if record.file_paths:
            message["file_paths"] = list(record.file_paths)
        messages.append(message)
    return messages


def format_for_summarization(records: list[MessageRecord]) -> str:
    parts: list[str] = []
    for record in records:
        text = f"[{record.role}]: {record.content}"
        if record.file_paths:
            text += f"\n[Attachments: {', '.join(Path(p).name for p in record.file_paths)}]"
        parts.append(text)
    return "\n\n".join(parts)


def adjust_boundary(targets: list[MessageRecord], eligible: list[MessageRecord]) -> list[MessageRecord]:
    """Extend the compacted prefix until the kept tail opens with a user turn.

    targets is a prefix of eligible (the visible non-summary messages, oldest
    first). The Messages API rejects a conversation whose first turn is not the
    user's, and the summary itself travels in the system prompt.
    """
    end = len(targets)
    while end < len(eligible) and eligible[end].role != "user":
        end += 1
    return eligible[:end]


class ChatService:
    def __init__(
        self,
        connection: DatabaseConnection,
        sessions: SessionRepository,
        messages: MessageRepository,
        config: AppConfig,
        provider: LLMProvider | None = None,
    ):
        self._db = connection
        self._sessions = sessions
        self._messages = messages
        self._config = config
        self._provider = provider

    @property
    def provider_configured(self) -> bool:
        return self._provider is not None

    def update_provider(self, provider: LLMProvider | None, config: AppConfig | None = None) -> None:
        self._provider = provider
        if config is not None:
            self._config = config

    def _require_provider(self) -> LLMProvider:
        if self._provider is None:
            raise ChatError("Claude API is not configured", PROVIDER_NOT_CONFIGURED)
        return self._provider

    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        provider = self._require_provider()

        # A new session is only written together with its first exchange.
        new_title: str | None = None
        if request.session_id:
            if await self._sessions.find_by_id(request.session_id) is None:
                raise ChatError(f"Session not found: {request.session_id}", SESSION_NOT_FOUND)
            session_id = request.session_id
            history = await self._messages.find_by_session_id(session_id)
        else:
            session_id = str(uuid4())
            new_title = generate_session_title(request.message)
            history = []

        content = self._with_context(request.message, request.context_file_path or self._config.context_file_path)
        file_paths = list(request.file_paths) or None

        outgoing = to_provider_messages(history)
        user_turn: dict = {"role": "user", "content": content}
        if file_paths:
            user_turn["file_paths"] = file_paths
        outgoing.append(user_turn)

        try:
            result = await provider.send_message(outgoing)
        except ChatError:
            raise
        except Exception as ex:
            raise ChatError(f"Failed to send message: {ex}", SEND_MESSAGE_FAILED) from ex

        async with self._db.transaction():
            if new_title is not None:
                await self._sessions.create(session_id, new_title)
            await self._messages.create(
                id=str(uuid4()),
                session_id=session_id,
                role="user",
                content=content,
                file_paths=file_paths,
            )
            await self._messages.create(
                id=str(uuid4()),
                session_id=session_id,
                role="assistant",
                content=result.content,
                token_count=result.token_count,
            )
            await self._sessions.update_token_count(session_id, result.token_count)

        if new_title is not None:
            logger.info(f"Created session {session_id} ({new_title!r})")

        updated = await self._sessions.find_by_id(session_id)
        total_tokens = updated.total_tokens if updated is not None else result.token_count

        await self._maybe_auto_compact(session_id)

        return SendMessageResponse(
            response=result.content,
            session_id=session_id,
            token_count=result.token_count,
            total_tokens=total_tokens,
        )

    def _with_context(self, message: str, context_file_path: str | None) -> str:
        if not context_file_path:
            return message
        path = Path(context_file_path).expanduser()
        try:
            context = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as ex:
            logger.warning(f"Failed to read context file {path}: {ex}")
            return message
        return f"Project context:\n{context}\n\n{message}"

    async def _maybe_auto_compact(self, session_id: str) -> None:
        threshold = self._config.compaction_threshold_messages
        if threshold <= 0:
            return
        count = await self._messages.get_message_count(session_id)
        if count <= threshold:
            return
        try:
            await self.compact_session(session_id)
        except ChatError as ex:
            logger.warning(f"Auto-compaction of session {session_id} failed: {ex}")

    async def compact_session(self, session_id: str, keep_recent: int | None = None) -> MessageRecord | None:
        """Replace the oldest messages of a session with one summary message.

        At most the newest keep_recent messages stay verbatim; the boundary
        moves forward past assistant turns so the kept tail starts with the
        user. Returns the summary record, or None when nothing is old enough
        to compact.
        """
        provider = self._require_provider()
        if await self._sessions.find_by_id(session_id) is None:
            raise ChatError(f"Session not found: {session_id}", SESSION_NOT_FOUND)

        keep = self._config.compaction_keep_recent if keep_recent is None else keep_recent
        targets = await self._messages.get_summary_targets(session_id, keep)
        if not targets:
            logger.debug(f"Compaction: nothing to compact in session {session_id}")
            return None

        visible = await self._messages.find_by_session_id(session_id)
        targets = adjust_boundary(targets, [m for m in visible if not m.is_summary])

        try:
            result = await provider.send_message(
                [{"role": "user", "content": _SUMMARIZE_PROMPT + format_for_summarization(targets)}]
            )
        except ChatError:
            raise
        except Exception as ex:
            raise ChatError(f"Failed to summarize session: {ex}", SEND_MESSAGE_FAILED) from ex

        async with self._db.transaction():
            summary = await self._messages.create(
                id=str(uuid4()),
                session_id=session_id,
                role="system",
                content=f"Summary of earlier conversation:\n{result.content}",
                token_count=result.token_count,
                is_summary=True,
                original_message_ids=[t.id for t in targets],
            )
            for target in targets:
                await self._messages.mark_as_deleted(target.id)
            await self._sessions.update_token_count(session_id, result.token_count)

        logger.info(
            f"Compaction: summarized {len(targets)} messages of session {session_id} "
            f"into ~{result.token_count:,} tokens"
        )
        return summary

    async def get_session(self, session_id: str) -> SessionDetail | None:
        session = await self._sessions.find_by_id(session_id)
        if session is None:
            return None
        messages = await self._messages.find_by_session_id(session_id)
        return SessionDetail(session=session, messages=messages)

    async def get_all_sessions(self) -> list[SessionRecord]:
        return await self._sessions.find_all()

    async def rename_session(self, session_id: str, name: str) -> SessionRecord | None:
        return await self._sessions.update(session_id, name=name.strip() or DEFAULT_SESSION_TITLE)

    async def delete_session(self, session_id: str) -> bool:
        if await self._sessions.find_by_id(session_id) is None:
            return False
        await self._sessions.delete(session_id)
        logger.info(f"Deleted session {session_id}")
        return True

    async def clear_all_sessions(self) -> None:
        await self._sessions.delete_all()
        logger.info("Deleted all sessions")

    async def delete_message(self, message_id: str) -> bool:
        if await self._messages.find_by_id(message_id) is None:
            return False
        await self._messages.mark_as_deleted(message_id)
        return True

    async def get_session_count(self) -> int:
        return await self._sessions.count()

    async def prune_history(self) -> int:
        return await prune_sessions(self._db, max_sessions=self._config.max_session_history)
