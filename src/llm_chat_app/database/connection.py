from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite
from loguru import logger

from llm_chat_app.database.errors import (
    DatabaseConnectionError,
    ForbiddenOperation,
    NestedTransactionError,
    QueryError,
)
from llm_chat_app.database.migrator import DEFAULT_MIGRATIONS_DIR, Migrator

DEFAULT_DB_FILENAME = "chat.db"


class DatabaseConnection:
    """Owns the single SQLite handle shared by every repository.

    Repositories receive this object by reference and never open or close the
    handle themselves. Statements run on aiosqlite's worker thread, which
    serializes them in submission order.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        migrations_dir: str | Path | None = None,
        allow_destructive_reset: bool = False,
    ):
        self._db_path = str(db_path)
        self._migrations_dir = Path(migrations_dir) if migrations_dir is not None else DEFAULT_MIGRATIONS_DIR
        self._allow_destructive_reset = allow_destructive_reset
        self._conn: aiosqlite.Connection | None = None
        self._migrator: Migrator | None = None
        self._in_transaction = False

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        if self._conn is not None:
            return

        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None: autocommit, transactions are bracketed explicitly
            conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        except (sqlite3.Error, OSError) as ex:
            logger.error(f"Failed to open database {self._db_path}: {ex}")
            raise DatabaseConnectionError(self._db_path, ex) from ex

        conn.row_factory = aiosqlite.Row
        self._conn = conn
        logger.info(f"Connected to SQLite database: {self._db_path}")

        try:
            await self.execute("PRAGMA foreign_keys = ON")
            migrator = Migrator(
                self,
                self._migrations_dir,
                allow_destructive_reset=self._allow_destructive_reset,
            )
            await migrator.migrate()
        except BaseException:
            await self._release()
            raise
        self._migrator = migrator

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._release()
        logger.info("Database connection closed")

    async def _release(self) -> None:
        conn = self._conn
        self._conn = None
        self._migrator = None
        self._in_transaction = False
        if conn is not None:
            await conn.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise DatabaseConnectionError(self._db_path, message="Database is not connected")
        return self._conn

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        conn = self._require_conn()
        try:
            cursor = await conn.execute(sql, tuple(params))
            await cursor.close()
        except sqlite3.Error as ex:
            raise QueryError(sql, ex) from ex

    async def query_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        conn = self._require_conn()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as ex:
            raise QueryError(sql, ex) from ex
        return dict(row) if row is not None else None

    async def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        conn = self._require_conn()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as ex:
            raise QueryError(sql, ex) from ex
        return [dict(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """BEGIN on entry, COMMIT on clean exit, ROLLBACK and re-raise otherwise.

        Transactions do not nest; opening one while another is active raises
        NestedTransactionError without touching the database.
        """
        if self._in_transaction:
            raise NestedTransactionError()
        self._require_conn()

        await self.execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._in_transaction = False
            try:
                await self.execute("ROLLBACK")
            except QueryError as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise
        self._in_transaction = False
        try:
            await self.execute("COMMIT")
        except QueryError:
            await self._rollback_quietly()
            raise

    async def _rollback_quietly(self) -> None:
        try:
            await self.execute("ROLLBACK")
        except QueryError as ex:
            logger.debug(f"Rollback after failed commit: {ex}")

    async def reset(self) -> None:
        """Drop and rebuild the schema. Development use only."""
        if not self._allow_destructive_reset:
            raise ForbiddenOperation("Database reset is not allowed in production environment")
        if self._migrator is None:
            raise DatabaseConnectionError(self._db_path, message="Database is not connected")
        await self._migrator.reset()
