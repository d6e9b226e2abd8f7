from __future__ import annotations

from typing import Any

from llm_chat_app.database.connection import DatabaseConnection
from llm_chat_app.database.errors import NoFieldsToUpdate
from llm_chat_app.database.models import SessionRecord


class SessionRepository:
    def __init__(self, connection: DatabaseConnection):
        self._db = connection

    async def create(self, session_id: str, name: str) -> SessionRecord:
        await self._db.execute(
            "INSERT INTO sessions (id, name) VALUES (?, ?)",
            (session_id, name),
        )
        created = await self.find_by_id(session_id)
        if created is None:
            raise RuntimeError(f"Failed to create session: {session_id}")
        return created

    async def find_by_id(self, session_id: str) -> SessionRecord | None:
        row = await self._db.query_one(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        )
        return _row_to_session(row) if row is not None else None

    async def find_all(self) -> list[SessionRecord]:
        rows = await self._db.query_all(
            "SELECT * FROM sessions ORDER BY updated_at DESC, rowid DESC"
        )
        return [_row_to_session(row) for row in rows]

    async def update(
        self,
        session_id: str,
        *,
        name: str | None = None,
        total_tokens: int | None = None,
    ) -> SessionRecord | None:
        fields: list[str] = []
        values: list[Any] = []

        if name is not None:
            fields.append("name = ?")
            values.append(name)
        if total_tokens is not None:
            fields.append("total_tokens = ?")
            values.append(total_tokens)

        if not fields:
            raise NoFieldsToUpdate()

        # updated_at is refreshed by the trg_sessions_updated_at trigger
        values.append(session_id)
        await self._db.execute(
            f"UPDATE sessions SET {', '.join(fields)} WHERE id = ?",
            values,
        )
        return await self.find_by_id(session_id)

    async def delete(self, session_id: str) -> None:
        await self._db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))

    async def delete_all(self) -> None:
        await self._db.execute("DELETE FROM sessions")

    async def update_token_count(self, session_id: str, delta: int) -> None:
        await self._db.execute(
            "UPDATE sessions SET total_tokens = total_tokens + ? WHERE id = ?",
            (delta, session_id),
        )

    async def count(self) -> int:
        row = await self._db.query_one("SELECT COUNT(*) AS c FROM sessions")
        return int(row["c"]) if row is not None else 0


def _row_to_session(row: dict[str, Any]) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        name=row["name"],
        total_tokens=int(row["total_tokens"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
