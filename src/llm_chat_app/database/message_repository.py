from __future__ import annotations

from typing import Any

from llm_chat_app.database.codec import decode_list, encode_list
from llm_chat_app.database.connection import DatabaseConnection
from llm_chat_app.database.models import MessageRecord

_COLUMNS = (
    "id, session_id, role, content, file_paths, token_count, "
    "is_summary, original_message_ids, is_deleted, created_at"
)


class MessageRepository:
    def __init__(self, connection: DatabaseConnection):
        self._db = connection

    async def create(
        self,
        *,
        id: str,
        session_id: str,
        role: str,
        content: str,
        file_paths: list[str] | None = None,
        token_count: int = 0,
        is_summary: bool = False,
        original_message_ids: list[str] | None = None,
    ) -> MessageRecord:
        await self._db.execute(
            """
            INSERT INTO messages (
                id, session_id, role, content, file_paths,
                token_count, is_summary, original_message_ids
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                id,
                session_id,
                role,
                content,
                encode_list(file_paths),
                token_count or 0,
                1 if is_summary else 0,
                encode_list(original_message_ids),
            ),
        )
        created = await self.find_by_id(id)
        if created is None:
            raise RuntimeError(f"Failed to create message: {id}")
        return created

    async def find_by_id(self, message_id: str) -> MessageRecord | None:
        row = await self._db.query_one(
            f"SELECT {_COLUMNS} FROM messages WHERE id = ? LIMIT 1",
            (message_id,),
        )
        return _row_to_message(row) if row is not None else None

    async def find_by_session_id(self, session_id: str) -> list[MessageRecord]:
        rows = await self._db.query_all(
            f"""
            SELECT {_COLUMNS}
            FROM messages
            WHERE session_id = ? AND is_deleted = 0
            ORDER BY created_at ASC, rowid ASC
            """,
            (session_id,),
        )
        return [_row_to_message(row) for row in rows]

    async def search(
        self,
        *,
        session_id: str | None = None,
        role: str | None = None,
        is_summary: bool | None = None,
        is_deleted: bool | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[MessageRecord]:
        conditions: list[str] = []
        values: list[Any] = []

        if session_id is not None:
            conditions.append("session_id = ?")
            values.append(session_id)
        if role is not None:
            conditions.append("role = ?")
            values.append(role)
        if is_summary is not None:
            conditions.append("is_summary = ?")
            values.append(1 if is_summary else 0)
        if is_deleted is not None:
            conditions.append("is_deleted = ?")
            values.append(1 if is_deleted else 0)

        sql = f"SELECT {_COLUMNS} FROM messages"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None:
            sql += " LIMIT ?"
            values.append(limit)
        elif offset is not None:
            # SQLite only accepts OFFSET after a LIMIT clause
            sql += " LIMIT -1"
        if offset is not None:
            sql += " OFFSET ?"
            values.append(offset)

        rows = await self._db.query_all(sql, values)
        return [_row_to_message(row) for row in rows]

    async def mark_as_deleted(self, message_id: str) -> None:
        await self._db.execute(
            "UPDATE messages SET is_deleted = 1 WHERE id = ?",
            (message_id,),
        )

    async def delete_by_session_id(self, session_id: str) -> None:
        await self._db.execute(
            "DELETE FROM messages WHERE session_id = ?",
            (session_id,),
        )

    async def get_summary_targets(self, session_id: str, keep_recent_count: int) -> list[MessageRecord]:
        """Oldest eligible messages, leaving the newest keep_recent_count untouched.

        Eligible means neither a summary nor tombstoned. Skipping the newest N
        and selecting the rest happens in one statement.
        """
        rows = await self._db.query_all(
            f"""
            SELECT {_COLUMNS}
            FROM (
                SELECT {_COLUMNS}, rowid AS insert_order
                FROM messages
                WHERE session_id = ? AND is_summary = 0 AND is_deleted = 0
                ORDER BY created_at DESC, rowid DESC
                LIMIT -1 OFFSET ?
            )
            ORDER BY created_at ASC, insert_order ASC
            """,
            (session_id, max(0, keep_recent_count)),
        )
        return [_row_to_message(row) for row in rows]

    async def get_message_count(self, session_id: str) -> int:
        row = await self._db.query_one(
            "SELECT COUNT(*) AS c FROM messages WHERE session_id = ? AND is_deleted = 0",
            (session_id,),
        )
        return int(row["c"]) if row is not None else 0


def _row_to_message(row: dict[str, Any]) -> MessageRecord:
    return MessageRecord(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        file_paths=decode_list(row["file_paths"]),
        token_count=int(row["token_count"] or 0),
        is_summary=bool(row["is_summary"]),
        original_message_ids=decode_list(row["original_message_ids"]),
        is_deleted=bool(row["is_deleted"]),
        created_at=row["created_at"],
    )
