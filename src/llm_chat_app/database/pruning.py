from __future__ import annotations

from loguru import logger

from llm_chat_app.database.connection import DatabaseConnection


async def prune_sessions(connection: DatabaseConnection, *, max_sessions: int) -> int:
    """Keep only the max_sessions most recently updated sessions.

    Messages of pruned sessions go with them through the cascade. Returns the
    number of sessions removed; max_sessions <= 0 disables pruning.
    """
    if max_sessions <= 0:
        return 0

    overflow = await connection.query_all(
        """
        SELECT id
        FROM sessions
        ORDER BY updated_at DESC, rowid DESC
        LIMIT -1 OFFSET ?
        """,
        (max_sessions,),
    )
    if not overflow:
        return 0

    async with connection.transaction():
        for row in overflow:
            await connection.execute("DELETE FROM sessions WHERE id = ?", (row["id"],))

    logger.info(f"Pruned {len(overflow)} sessions beyond the history limit of {max_sessions}")
    return len(overflow)
