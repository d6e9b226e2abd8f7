from __future__ import annotations


class DatabaseError(Exception):
    """Base class for every failure raised by the persistence layer."""


class DatabaseConnectionError(DatabaseError):
    def __init__(self, path: str, cause: BaseException | None = None, message: str | None = None):
        self.path = path
        self.cause = cause
        if message is None:
            message = f"Failed to open database at {path}"
            if cause is not None:
                message += f": {cause}"
        super().__init__(message)


class QueryError(DatabaseError):
    def __init__(self, sql: str, cause: BaseException):
        self.sql = sql
        self.cause = cause
        super().__init__(f"Query failed: {cause} (sql: {_one_line(sql)})")


class MigrationFailed(DatabaseError):
    def __init__(self, version: str, cause: BaseException):
        self.version = version
        self.cause = cause
        super().__init__(f"Migration {version} failed: {cause}")


class ForbiddenOperation(DatabaseError):
    pass


class NoFieldsToUpdate(DatabaseError):
    def __init__(self) -> None:
        super().__init__("No fields to update")


class NestedTransactionError(DatabaseError):
    def __init__(self) -> None:
        super().__init__("A transaction is already open on this connection")


def _one_line(sql: str, max_chars: int = 200) -> str:
    text = " ".join(sql.split())
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."
