import asyncio

from dotenv import load_dotenv
from loguru import logger

from llm_chat_app.app_config import resolve_runtime_env
from llm_chat_app.bootstrap import AppRuntime, bootstrap_runtime
from llm_chat_app.commands.router import CommandRouter
from llm_chat_app.database import DatabaseError, ForbiddenOperation
from llm_chat_app.provider import ChatError
from llm_chat_app.services.session_controller import SessionController
from llm_chat_app.services.types import SendMessageRequest

_LINE_PREFIX = "assistant> "
_USER_PROMPT = "you> "

_HELP_LINES = [
    "/new                 start a new conversation",
    "/sessions            list saved conversations",
    "/open <id>           switch to a conversation (id prefix accepted)",
    "/rename <name>       rename the current conversation",
    "/delete [id]         delete a conversation (default: current)",
    "/clear               delete every conversation",
    "/attach <path>       attach a file to the next message",
    "/compact [keep]      summarize older messages, keeping the newest [keep]",
    "/history             show the current conversation",
    "/reset               drop and rebuild the database (development only)",
    "exit | quit          leave",
]


class ChatRepl:
    def __init__(self, runtime: AppRuntime):
        self._runtime = runtime
        self._chat = runtime.chat_service
        self._controller = SessionController(line_prefix=_LINE_PREFIX)
        self._active_session_id: str | None = None
        self._pending_attachments: list[str] = []
        self._router = CommandRouter(
            {
                "help": self._on_help,
                "new": self._on_new,
                "sessions": self._on_sessions,
                "open": self._on_open,
                "rename": self._on_rename,
                "delete": self._on_delete,
                "clear": self._on_clear,
                "attach": self._on_attach,
                "compact": self._on_compact,
                "history": self._on_history,
                "reset": self._on_reset,
            },
            on_unknown=self._on_unknown,
        )

    def _say(self, text: str) -> None:
        print(f"{_LINE_PREFIX}{text}")

    async def handle(self, line: str) -> None:
        if await self._router.try_handle(line):
            return

        request = SendMessageRequest(
            message=line,
            file_paths=list(self._pending_attachments),
            session_id=self._active_session_id,
        )
        response = await self._chat.send_message(request)
        self._pending_attachments.clear()
        self._active_session_id = response.session_id
        print(f"{_LINE_PREFIX}{response.response}")
        print(f"{_LINE_PREFIX}(tokens: {response.token_count:,}, session total: {response.total_tokens:,})")

    async def _on_help(self, _: str) -> None:
        for line in _HELP_LINES:
            self._say(line)

    async def _on_new(self, _: str) -> None:
        self._active_session_id = None
        self._pending_attachments.clear()
        self._say("Started a new conversation.")

    async def _on_sessions(self, _: str) -> None:
        sessions = await self._chat.get_all_sessions()
        if not sessions:
            self._say("No saved conversations.")
            return
        for session in sessions:
            print(self._controller.format_session_list_entry(session, active_session_id=self._active_session_id))

    async def _on_open(self, args: str) -> None:
        session_id = self._controller.resolve_id(await self._chat.get_all_sessions(), args)
        if session_id is None:
            self._say(f"Session not found: {args}")
            return
        self._active_session_id = session_id
        await self._on_history("")

    async def _on_rename(self, args: str) -> None:
        if self._active_session_id is None:
            self._say("No active conversation.")
            return
        if not args:
            self._say("Usage: /rename <name>")
            return
        session = await self._chat.rename_session(self._active_session_id, args)
        if session is not None:
            self._say(f"Renamed to {session.name!r}.")

    async def _on_delete(self, args: str) -> None:
        target = self._active_session_id
        if args:
            target = self._controller.resolve_id(await self._chat.get_all_sessions(), args)
        if target is None or not await self._chat.delete_session(target):
            self._say("Session not found.")
            return
        if target == self._active_session_id:
            self._active_session_id = None
        self._say(f"Deleted session {self._controller.short_id(target)}.")

    async def _on_clear(self, _: str) -> None:
        await self._chat.clear_all_sessions()
        self._active_session_id = None
        self._say("Deleted all conversations.")

    async def _on_attach(self, args: str) -> None:
        if not args:
            self._say("Usage: /attach <path>")
            return
        self._pending_attachments.append(args)
        self._say(f"Attached {args} ({len(self._pending_attachments)} pending).")

    async def _on_compact(self, args: str) -> None:
        if self._active_session_id is None:
            self._say("No active conversation.")
            return
        keep = int(args) if args.isdigit() else None
        summary = await self._chat.compact_session(self._active_session_id, keep)
        if summary is None:
            self._say("Nothing to compact.")
        else:
            self._say(f"Compacted {len(summary.original_message_ids or [])} messages into a summary.")

    async def _on_history(self, _: str) -> None:
        if self._active_session_id is None:
            self._say("No active conversation.")
            return
        detail = await self._chat.get_session(self._active_session_id)
        if detail is None:
            self._say("Session not found.")
            return
        self._say(f"{detail.session.name} [{self._controller.short_id(detail.session.id)}]")
        for line in self._controller.format_history_lines(detail.messages):
            print(line)

    async def _on_reset(self, _: str) -> None:
        try:
            await self._runtime.connection.reset()
        except ForbiddenOperation as ex:
            self._say(str(ex))
            return
        self._active_session_id = None
        self._say("Database reset.")

    def _on_unknown(self, command: str) -> None:
        self._say(f"Unknown command: {command} (try /help)")


async def main() -> None:
    load_dotenv()
    env = resolve_runtime_env()
    runtime = await bootstrap_runtime(env)

    print("llm-chat-app (type 'exit' to quit, '/help' for commands)")
    print(f"Model: {runtime.config.model}")
    print(f"Database: {runtime.connection.db_path}")
    if not runtime.chat_service.provider_configured:
        print("Warning: ANTHROPIC_API_KEY is not set; messages cannot be sent.")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    repl = ChatRepl(runtime)
    try:
        while True:
            try:
                user_input = input(_USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await repl.handle(trimmed)
            except ChatError as ex:
                logger.error(f"Chat error [{ex.code}]: {ex}")
            except (DatabaseError, ValueError) as ex:
                logger.error(f"Error: {ex}")
            print()
    finally:
        await runtime.shutdown()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
