from llm_chat_app.database.connection import DEFAULT_DB_FILENAME, DatabaseConnection
from llm_chat_app.database.errors import (
    DatabaseConnectionError,
    DatabaseError,
    ForbiddenOperation,
    MigrationFailed,
    NestedTransactionError,
    NoFieldsToUpdate,
    QueryError,
)
from llm_chat_app.database.message_repository import MessageRepository
from llm_chat_app.database.migrator import Migration, Migrator
from llm_chat_app.database.models import MessageRecord, SessionRecord
from llm_chat_app.database.pruning import prune_sessions
from llm_chat_app.database.session_repository import SessionRepository

__all__ = [
    "DEFAULT_DB_FILENAME",
    "DatabaseConnection",
    "DatabaseConnectionError",
    "DatabaseError",
    "ForbiddenOperation",
    "MessageRecord",
    "MessageRepository",
    "Migration",
    "MigrationFailed",
    "Migrator",
    "NestedTransactionError",
    "NoFieldsToUpdate",
    "QueryError",
    "SessionRecord",
    "SessionRepository",
    "prune_sessions",
]
