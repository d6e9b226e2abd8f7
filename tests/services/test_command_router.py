import asyncio
import unittest

from llm_chat_app.commands.router import CommandRouter


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.unknown: list[str] = []

        async def on_open(args: str) -> None:
            self.calls.append(("open", args))

        async def on_help(args: str) -> None:
            self.calls.append(("help", args))

        self.router = CommandRouter({"open": on_open, "help": on_help}, on_unknown=self.unknown.append)

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(asyncio.run(self.router.try_handle("hello /open")))
        self.assertEqual([], self.calls)

    def test_dispatches_with_stripped_args(self) -> None:
        self.assertTrue(asyncio.run(self.router.try_handle("  /OPEN   abc123  ")))
        self.assertEqual([("open", "abc123")], self.calls)

    def test_command_without_args(self) -> None:
        asyncio.run(self.router.try_handle("/help"))
        self.assertEqual([("help", "")], self.calls)

    def test_unknown_command_is_reported(self) -> None:
        self.assertTrue(asyncio.run(self.router.try_handle("/nope x")))
        self.assertEqual(["/nope x"], self.unknown)

    def test_command_names_sorted(self) -> None:
        self.assertEqual(["help", "open"], self.router.command_names)


if __name__ == "__main__":
    unittest.main()
