import unittest
from dataclasses import replace

from llm_chat_app.app_config import AppConfig
from llm_chat_app.database.models import MessageRecord
from llm_chat_app.provider import (
    CLAUDE_API_ERROR,
    PROVIDER_NOT_CONFIGURED,
    SEND_MESSAGE_FAILED,
    SESSION_NOT_FOUND,
    ChatError,
    ProviderResponse,
)
from llm_chat_app.services.chat_service import (
    DEFAULT_SESSION_TITLE,
    ChatService,
    format_for_summarization,
    generate_session_title,
)
from llm_chat_app.services.types import SendMessageRequest
from tests.database.base import DatabaseTestCase


class _FakeProvider:
    def __init__(self, replies: list[ProviderResponse] | None = None, error: Exception | None = None):
        self._replies = list(replies or [])
        self._error = error
        self.calls: list[list[dict]] = []

    async def send_message(self, messages: list[dict], *, system_prompt: str = "") -> ProviderResponse:
        self.calls.append(messages)
        if self._error is not None:
            raise self._error
        if self._replies:
            return self._replies.pop(0)
        return ProviderResponse(content=f"reply {len(self.calls)}", token_count=10)


class GenerateSessionTitleTests(unittest.TestCase):
    def test_short_message_is_used_verbatim(self) -> None:
        self.assertEqual("Hello there", generate_session_title("  Hello\n there "))

    def test_long_message_is_truncated(self) -> None:
        title = generate_session_title("x" * 80)
        self.assertEqual(50, len(title))
        self.assertTrue(title.endswith("..."))

    def test_blank_message_gets_default(self) -> None:
        self.assertEqual(DEFAULT_SESSION_TITLE, generate_session_title("   "))


class ChatServiceTestCase(DatabaseTestCase):
    config = AppConfig()

    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self._provider = _FakeProvider()
        self._service = ChatService(self._db, self._sessions, self._messages, self.config, self._provider)


class SendMessageTests(ChatServiceTestCase):
    async def test_new_conversation_creates_session_and_both_messages(self) -> None:
        response = await self._service.send_message(SendMessageRequest(message="What is SQLite?"))

        self.assertEqual("reply 1", response.response)
        self.assertEqual(10, response.token_count)
        self.assertEqual(10, response.total_tokens)

        session = await self._sessions.find_by_id(response.session_id)
        self.assertEqual("What is SQLite?", session.name)
        messages = await self._messages.find_by_session_id(response.session_id)
        self.assertEqual(["user", "assistant"], [m.role for m in messages])
        self.assertEqual(10, messages[1].token_count)

    async def test_follow_up_sends_history_and_accumulates_tokens(self) -> None:
        first = await self._service.send_message(SendMessageRequest(message="one"))
        second = await self._service.send_message(
            SendMessageRequest(message="two", session_id=first.session_id)
        )

        self.assertEqual(first.session_id, second.session_id)
        self.assertEqual(20, second.total_tokens)
        self.assertEqual(
            [("user", "one"), ("assistant", "reply 1"), ("user", "two")],
            [(m["role"], m["content"]) for m in self._provider.calls[1]],
        )

    async def test_attachments_are_stored_with_user_message(self) -> None:
        response = await self._service.send_message(
            SendMessageRequest(message="see file", file_paths=["/tmp/a.txt"])
        )

        user = (await self._messages.find_by_session_id(response.session_id))[0]
        self.assertEqual(["/tmp/a.txt"], user.file_paths)
        self.assertEqual(["/tmp/a.txt"], self._provider.calls[0][-1]["file_paths"])

    async def test_unknown_session_raises(self) -> None:
        with self.assertRaises(ChatError) as ctx:
            await self._service.send_message(SendMessageRequest(message="hi", session_id="missing"))
        self.assertEqual(SESSION_NOT_FOUND, ctx.exception.code)

    async def test_without_provider_raises(self) -> None:
        self._service.update_provider(None)
        with self.assertRaises(ChatError) as ctx:
            await self._service.send_message(SendMessageRequest(message="hi"))
        self.assertEqual(PROVIDER_NOT_CONFIGURED, ctx.exception.code)
        self.assertEqual(0, await self._sessions.count())

    async def test_provider_chat_error_passes_through_and_stores_nothing(self) -> None:
        self._service.update_provider(_FakeProvider(error=ChatError("boom", CLAUDE_API_ERROR, 500)))
        await self._sessions.create("s1", "existing")

        with self.assertRaises(ChatError) as ctx:
            await self._service.send_message(SendMessageRequest(message="hi", session_id="s1"))

        self.assertEqual(CLAUDE_API_ERROR, ctx.exception.code)
        self.assertEqual(0, await self._messages.get_message_count("s1"))

    async def test_unexpected_provider_failure_is_wrapped(self) -> None:
        self._service.update_provider(_FakeProvider(error=RuntimeError("kaput")))
        with self.assertRaises(ChatError) as ctx:
            await self._service.send_message(SendMessageRequest(message="hi"))
        self.assertEqual(SEND_MESSAGE_FAILED, ctx.exception.code)

    async def test_failed_first_message_leaves_no_session_behind(self) -> None:
        self._service.update_provider(_FakeProvider(error=RuntimeError("down")))

        for _ in range(3):
            with self.assertRaises(ChatError):
                await self._service.send_message(SendMessageRequest(message="hi"))

        self.assertEqual(0, await self._sessions.count())
        self.assertEqual([], await self._messages.search())

    async def test_conversation_after_odd_compaction_starts_with_user(self) -> None:
        first = await self._service.send_message(SendMessageRequest(message="one"))
        for text in ("two", "three"):
            await self._service.send_message(SendMessageRequest(message=text, session_id=first.session_id))

        await self._service.compact_session(first.session_id, keep_recent=3)
        await self._service.send_message(SendMessageRequest(message="four", session_id=first.session_id))

        roles = [m["role"] for m in self._provider.calls[-1] if m["role"] != "system"]
        self.assertEqual(["user", "assistant", "user"], roles)


class ContextFileTests(ChatServiceTestCase):
    async def test_context_file_is_prepended(self) -> None:
        path = self._tmp_dir / "context.md"
        path.write_text("Use tabs.", encoding="utf-8")

        await self._service.send_message(
            SendMessageRequest(message="format this", context_file_path=str(path))
        )

        self.assertEqual("Project context:\nUse tabs.\n\nformat this", self._provider.calls[0][-1]["content"])

    async def test_unreadable_context_file_is_ignored(self) -> None:
        await self._service.send_message(
            SendMessageRequest(message="plain", context_file_path=str(self._tmp_dir / "missing.md"))
        )
        self.assertEqual("plain", self._provider.calls[0][-1]["content"])


class CompactSessionTests(ChatServiceTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        await self._sessions.create("s1", "long chat")
        self._ids = await self._add_messages("s1", 8)
        self._provider = _FakeProvider([ProviderResponse(content="they talked", token_count=4)])
        self._service.update_provider(self._provider)

    async def test_replaces_oldest_messages_with_summary(self) -> None:
        summary = await self._service.compact_session("s1", keep_recent=4)

        self.assertTrue(summary.is_summary)
        self.assertEqual("system", summary.role)
        self.assertEqual(self._ids[:4], summary.original_message_ids)
        self.assertIn("they talked", summary.content)

        visible = await self._messages.find_by_session_id("s1")
        self.assertEqual(self._ids[4:] + [summary.id], [m.id for m in visible])
        for message_id in self._ids[:4]:
            self.assertTrue((await self._messages.find_by_id(message_id)).is_deleted)
        self.assertEqual(4, (await self._sessions.find_by_id("s1")).total_tokens)

    async def test_summary_prompt_contains_only_targets(self) -> None:
        await self._service.compact_session("s1", keep_recent=4)

        prompt = self._provider.calls[0][0]["content"]
        self.assertIn("[user]: m1", prompt)
        self.assertIn("[assistant]: m4", prompt)
        self.assertNotIn("m5", prompt)

    async def test_odd_keep_count_moves_boundary_past_assistant_turn(self) -> None:
        summary = await self._service.compact_session("s1", keep_recent=5)

        self.assertEqual(self._ids[:4], summary.original_message_ids)
        kept = [m for m in await self._messages.find_by_session_id("s1") if not m.is_summary]
        self.assertEqual(self._ids[4:], [m.id for m in kept])
        self.assertEqual("user", kept[0].role)

    async def test_trailing_assistant_turns_are_all_compacted(self) -> None:
        await self._messages.create(id="s1-extra", session_id="s1", role="assistant", content="extra")

        summary = await self._service.compact_session("s1", keep_recent=2)

        self.assertEqual(self._ids + ["s1-extra"], summary.original_message_ids)
        kept = [m for m in await self._messages.find_by_session_id("s1") if not m.is_summary]
        self.assertEqual([], kept)

    async def test_nothing_to_compact_returns_none(self) -> None:
        self.assertIsNone(await self._service.compact_session("s1", keep_recent=8))
        self.assertEqual([], self._provider.calls)

    async def test_unknown_session_raises(self) -> None:
        with self.assertRaises(ChatError) as ctx:
            await self._service.compact_session("missing")
        self.assertEqual(SESSION_NOT_FOUND, ctx.exception.code)

    async def test_failed_summary_leaves_messages_untouched(self) -> None:
        self._service.update_provider(_FakeProvider(error=ChatError("down", CLAUDE_API_ERROR)))

        with self.assertRaises(ChatError):
            await self._service.compact_session("s1", keep_recent=5)

        self.assertEqual(8, await self._messages.get_message_count("s1"))

    def test_format_for_summarization_lists_attachment_names(self) -> None:
        record = MessageRecord(
            id="x",
            session_id="s",
            role="user",
            content="see",
            file_paths=["/a/b/report.pdf"],
            token_count=0,
            is_summary=False,
            original_message_ids=None,
            is_deleted=False,
            created_at="",
        )
        self.assertEqual("[user]: see\n[Attachments: report.pdf]", format_for_summarization([record]))


class AutoCompactionTests(ChatServiceTestCase):
    config = replace(AppConfig(), compaction_threshold_messages=4, compaction_keep_recent=2)

    async def test_compacts_once_threshold_is_exceeded(self) -> None:
        first = await self._service.send_message(SendMessageRequest(message="one"))
        await self._service.send_message(SendMessageRequest(message="two", session_id=first.session_id))
        self.assertEqual(0, len(await self._messages.search(session_id=first.session_id, is_summary=True)))

        await self._service.send_message(SendMessageRequest(message="three", session_id=first.session_id))

        visible = await self._messages.find_by_session_id(first.session_id)
        self.assertEqual(3, len(visible))
        self.assertTrue(visible[-1].is_summary)
        self.assertEqual(["three", "reply 3"], [m.content for m in visible[:2]])


class SessionManagementTests(ChatServiceTestCase):
    async def test_get_session_returns_visible_messages(self) -> None:
        await self._sessions.create("s1", "chat")
        ids = await self._add_messages("s1", 3)
        await self._service.delete_message(ids[0])

        detail = await self._service.get_session("s1")

        self.assertEqual("chat", detail.session.name)
        self.assertEqual(ids[1:], [m.id for m in detail.messages])

    async def test_get_missing_session_returns_none(self) -> None:
        self.assertIsNone(await self._service.get_session("missing"))

    async def test_rename_blank_falls_back_to_default(self) -> None:
        await self._sessions.create("s1", "chat")
        self.assertEqual("Renamed", (await self._service.rename_session("s1", " Renamed ")).name)
        self.assertEqual(DEFAULT_SESSION_TITLE, (await self._service.rename_session("s1", "  ")).name)

    async def test_delete_session_reports_existence(self) -> None:
        await self._sessions.create("s1", "chat")
        self.assertTrue(await self._service.delete_session("s1"))
        self.assertFalse(await self._service.delete_session("s1"))

    async def test_delete_missing_message_returns_false(self) -> None:
        self.assertFalse(await self._service.delete_message("missing"))

    async def test_clear_all_sessions(self) -> None:
        await self._sessions.create("s1", "a")
        await self._sessions.create("s2", "b")
        await self._service.clear_all_sessions()
        self.assertEqual(0, await self._service.get_session_count())

    async def test_prune_history_uses_configured_limit(self) -> None:
        service = ChatService(
            self._db,
            self._sessions,
            self._messages,
            replace(AppConfig(), max_session_history=1),
            self._provider,
        )
        await self._sessions.create("old", "a")
        await self._sessions.create("new", "b")

        self.assertEqual(1, await service.prune_history())
        self.assertEqual(["new"], [s.id for s in await service.get_all_sessions()])


if __name__ == "__main__":
    unittest.main()
