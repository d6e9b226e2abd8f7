from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from llm_chat_app.database.errors import ForbiddenOperation, MigrationFailed, QueryError

if TYPE_CHECKING:
    from llm_chat_app.database.connection import DatabaseConnection

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

MIGRATION_FILENAME = re.compile(r"^(v\d+_\d+)_.*\.sql$")
_VERSION_TOKEN = re.compile(r"^v(\d+)_(\d+)$")

# Dropped by reset(); children before parents.
DOMAIN_TABLES = ("messages", "sessions")
VERSION_TABLE = "schema_version"

_CREATE_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version TEXT PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
)
"""


@dataclass(frozen=True)
class Migration:
    version: str
    filename: str
    content: str

    @property
    def sort_key(self) -> tuple[int, int]:
        return parse_version(self.version)


def parse_version(version: str) -> tuple[int, int]:
    match = _VERSION_TOKEN.match(version)
    if match is None:
        raise ValueError(f"Not a migration version token: {version!r}")
    return int(match.group(1)), int(match.group(2))


def split_statements(script: str) -> list[str]:
    """Split a SQL script into complete statements.

    Uses sqlite3.complete_statement so trigger bodies (BEGIN ... END;) stay in
    one piece. Chunks holding only comments or whitespace are dropped.
    """
    statements: list[str] = []
    buffer = ""
    for line in script.splitlines(keepends=True):
        buffer += line
        if sqlite3.complete_statement(buffer):
            _append_statement(statements, buffer)
            buffer = ""
    _append_statement(statements, buffer)
    return statements


def _append_statement(statements: list[str], chunk: str) -> None:
    meaningful = [
        line for line in chunk.splitlines()
        if line.strip() and not line.strip().startswith("--")
    ]
    if meaningful:
        statements.append(chunk.strip())


class Migrator:
    def __init__(
        self,
        connection: DatabaseConnection,
        migrations_dir: str | Path = DEFAULT_MIGRATIONS_DIR,
        *,
        allow_destructive_reset: bool = False,
    ):
        self._db = connection
        self._migrations_dir = Path(migrations_dir)
        self._allow_destructive_reset = allow_destructive_reset

    async def get_current_version(self) -> str | None:
        try:
            row = await self._db.query_one(
                "SELECT version FROM schema_version ORDER BY applied_at DESC, rowid DESC LIMIT 1"
            )
        except QueryError as ex:
            if isinstance(ex.cause, sqlite3.OperationalError) and "no such table" in str(ex.cause):
                return None
            raise
        if row is None:
            return None
        return row["version"] or None

    def load_migrations(self) -> list[Migration]:
        if not self._migrations_dir.is_dir():
            logger.debug(f"Migrations directory not found: {self._migrations_dir}")
            return []

        migrations: list[Migration] = []
        for path in self._migrations_dir.iterdir():
            match = MIGRATION_FILENAME.match(path.name)
            if match is None or not path.is_file():
                continue
            migrations.append(
                Migration(
                    version=match.group(1),
                    filename=path.name,
                    content=path.read_text(encoding="utf-8"),
                )
            )

        migrations.sort(key=lambda m: m.sort_key)
        return migrations

    async def migrate(self) -> list[str]:
        current = await self.get_current_version()
        migrations = self.load_migrations()
        logger.info(f"Current database version: {current or 'none'}")

        pending = migrations
        if current:
            try:
                current_key = parse_version(current)
            except ValueError as ex:
                logger.error(f"Unrecognized schema version {current!r}: {ex}")
                raise MigrationFailed(current, ex) from ex
            pending = [m for m in migrations if m.sort_key > current_key]
        if not pending:
            logger.debug("Database is up to date")
            return []

        logger.info(f"Found {len(pending)} pending migrations")
        applied: list[str] = []
        for migration in pending:
            await self._apply(migration)
            applied.append(migration.version)
        logger.info("All migrations completed successfully")
        return applied

    async def _apply(self, migration: Migration) -> None:
        logger.info(f"Executing migration: {migration.filename}")
        try:
            async with self._db.transaction():
                for statement in split_statements(migration.content):
                    await self._db.execute(statement)
                await self._db.execute(_CREATE_VERSION_TABLE)
                await self._db.execute(
                    "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                    (migration.version,),
                )
        except QueryError as ex:
            logger.error(f"Migration {migration.version} failed: {ex}")
            raise MigrationFailed(migration.version, ex.cause) from ex
        logger.info(f"Migration {migration.version} completed")

    async def reset(self) -> None:
        if not self._allow_destructive_reset:
            raise ForbiddenOperation("Database reset is not allowed in production environment")

        logger.warning("Resetting database...")
        for table in (*DOMAIN_TABLES, VERSION_TABLE):
            await self._db.execute(f"DROP TABLE IF EXISTS {table}")
        logger.info("All tables dropped. Running migrations...")
        await self.migrate()
