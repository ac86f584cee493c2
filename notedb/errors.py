"""
Error taxonomy for NoteDB.

Configuration problems (bad block text, bad widget attributes, unsafe
identifiers) never reach the database. Schema problems are detected by the
validator before a query is compiled. Constraint and backend failures abort
the current operation and are surfaced to the caller; nothing here retries.
"""

from __future__ import annotations

from typing import Any


class NoteDBError(Exception):
    """Base class for every error raised by NoteDB."""

    pass


class ConfigError(NoteDBError):
    """Raised when block text or widget attributes fail required-field or consistency checks."""

    pass


class InvalidIdentifier(ConfigError):
    """Raised when a table or column name is not a safe SQL identifier."""

    def __init__(self, name: Any):
        self.name = name
        super().__init__(
            f"Invalid identifier used: {name!r}. Only alphanumeric and underscores allowed."
        )


class SchemaValidationError(NoteDBError):
    """Raised when a config references a table or columns that do not exist."""

    def __init__(self, message: str, available_columns: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.available_columns = list(available_columns or [])


class ConstraintError(NoteDBError):
    """
    Raised when an upsert cannot resolve its conflict target.

    The target table is missing the composite UNIQUE index the upsert relies
    on. ``index_sql`` is the statement that creates it.
    """

    def __init__(self, message: str, index_sql: str):
        super().__init__(message)
        self.index_sql = index_sql


class TransientBackendError(NoteDBError):
    """Raised when a read, write or HTTP call fails for any other reason."""

    def __init__(self, message: str, sql: str | None = None, params: list | None = None):
        super().__init__(message)
        self.message = message
        self.sql = sql
        self.params = list(params) if params is not None else None
