import unittest

from llm_chat_app.database import prune_sessions
from tests.database.base import DatabaseTestCase


class PruneSessionsTests(DatabaseTestCase):
    async def test_keeps_most_recent_sessions(self) -> None:
        for i in range(5):
            await self._sessions.create(f"s{i}", f"session {i}")
            await self._add_messages(f"s{i}", 2)

        removed = await prune_sessions(self._db, max_sessions=3)

        self.assertEqual(2, removed)
        self.assertEqual(["s4", "s3", "s2"], [s.id for s in await self._sessions.find_all()])
        row = await self._db.query_one(
            "SELECT COUNT(*) AS c FROM messages WHERE session_id IN ('s0', 's1')"
        )
        self.assertEqual(0, row["c"])

    async def test_under_limit_is_a_no_op(self) -> None:
        await self._sessions.create("s1", "only")
        self.assertEqual(0, await prune_sessions(self._db, max_sessions=3))
        self.assertEqual(1, await self._sessions.count())

    async def test_zero_limit_disables_pruning(self) -> None:
        await self._sessions.create("s1", "only")
        self.assertEqual(0, await prune_sessions(self._db, max_sessions=0))
        self.assertEqual(1, await self._sessions.count())


if __name__ == "__main__":
    unittest.main()
