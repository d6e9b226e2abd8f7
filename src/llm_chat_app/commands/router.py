from __future__ import annotations

from collections.abc import Awaitable, Callable

CommandHandler = Callable[[str], Awaitable[None]]


class CommandRouter:
    """Dispatches `/name args` lines to registered async handlers."""

    def __init__(
        self,
        handlers: dict[str, CommandHandler],
        *,
        on_unknown: Callable[[str], None],
    ) -> None:
        self._handlers = dict(handlers)
        self._on_unknown = on_unknown

    @property
    def command_names(self) -> list[str]:
        return sorted(self._handlers)

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        name, _, args = trimmed[1:].partition(" ")
        handler = self._handlers.get(name.lower())
        if handler is None:
            self._on_unknown(trimmed)
            return True

        await handler(args.strip())
        return True
