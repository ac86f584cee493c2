"""
NoteDB: declarative SQL blocks, charts and bound widgets over one SQLite
database, embedded or behind an HTTP service.

Usage:
    from notedb import NoteDBRuntime, load_settings

    with NoteDBRuntime(load_settings()) as runtime:
        print(runtime.render_block("sql", "table: tasks").to_text())
"""

from .config import Settings, load_settings
from .errors import (
    ConfigError,
    ConstraintError,
    InvalidIdentifier,
    NoteDBError,
    SchemaValidationError,
    TransientBackendError,
)
from .runtime import NoteDBRuntime

__all__ = [
    "NoteDBRuntime",
    "Settings",
    "load_settings",
    "NoteDBError",
    "ConfigError",
    "InvalidIdentifier",
    "SchemaValidationError",
    "ConstraintError",
    "TransientBackendError",
]

__version__ = "1.0.0"
