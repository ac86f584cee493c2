"""
Centralized SQL construction with validated identifiers.

All dynamic SQL assembly for widget bindings lives here. Table and column
names are validated against _SAFE_IDENTIFIER_RE and wrapped in double quotes
before interpolation. Values are always passed as ? parameters and never
interpolated.

SQLite does not support parameterized identifiers (? works only for values,
not table/column names). Every f-string in this file is a validated-identifier
interpolation, not a user-input injection risk.
"""

# ruff: noqa: S608 - all identifiers validated via quote_identifier() before interpolation.

from __future__ import annotations

import re
from collections.abc import Sequence

from .errors import InvalidIdentifier

_SAFE_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_]+")

SURROGATE_KEY_COLUMN = "uuid"
UPDATED_AT_COLUMN = "updatedAt"
CREATED_AT_COLUMN = "createdAt"


def validate_identifier(name: str) -> str:
    """Validate that *name* is a safe SQL identifier.

    Returns the name unchanged if valid; raises InvalidIdentifier otherwise.
    """
    if not isinstance(name, str) or not _SAFE_IDENTIFIER_RE.fullmatch(name):
        raise InvalidIdentifier(name)
    return name


def quote_identifier(name: str) -> str:
    """Validate *name* and wrap it in double quotes."""
    return f'"{validate_identifier(name)}"'


def quote_all(names: Sequence[str]) -> list[str]:
    return [quote_identifier(n) for n in names]


# ────────────────────────────────────────────────────────────
# Metadata (SQLite PRAGMA / sqlite_master)
# ────────────────────────────────────────────────────────────


def pragma_table_info(table: str) -> str:
    """PRAGMA table_info for a validated table name."""
    return f"PRAGMA table_info({quote_identifier(table)})"


def list_tables() -> str:
    return "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"


def sample_rows(table: str) -> str:
    """First rows of a table, for structure inspection. Takes one LIMIT parameter."""
    return f"SELECT * FROM {quote_identifier(table)} LIMIT ?"


# ────────────────────────────────────────────────────────────
# Widget record statements
# ────────────────────────────────────────────────────────────


def _where_equals(columns: Sequence[str]) -> str:
    return " AND ".join(f"{quote_identifier(c)} = ?" for c in columns)


def select_value(table: str, value_column: str, key_columns: Sequence[str]) -> str:
    """SELECT "<value>" AS value ... WHERE each key column = ?."""
    return (
        f"SELECT {quote_identifier(value_column)} AS value FROM {quote_identifier(table)} "
        f"WHERE {_where_equals(key_columns)}"
    )


def select_surrogate_key(table: str, key_columns: Sequence[str]) -> str:
    """SELECT uuid ... WHERE each natural key column = ?."""
    return (
        f"SELECT {SURROGATE_KEY_COLUMN} FROM {quote_identifier(table)} "
        f"WHERE {_where_equals(key_columns)}"
    )


def update_by_surrogate_key(table: str, set_columns: Sequence[str]) -> str:
    """UPDATE ... SET each column = ? WHERE uuid = ?."""
    sets = ", ".join(f"{quote_identifier(c)} = ?" for c in set_columns)
    return f"UPDATE {quote_identifier(table)} SET {sets} WHERE {SURROGATE_KEY_COLUMN} = ?"


def insert_on_conflict(
    table: str,
    key_columns: Sequence[str],
    update_columns: Sequence[str],
) -> str:
    """INSERT keyed on *key_columns*, updating *update_columns* on conflict.

    Requires a UNIQUE index over exactly *key_columns*.
    """
    columns = list(key_columns) + list(update_columns)
    cols = ", ".join(quote_all(columns))
    placeholders = ", ".join("?" for _ in columns)
    target = ", ".join(quote_all(key_columns))
    sets = ", ".join(
        f"{quote_identifier(c)} = excluded.{quote_identifier(c)}" for c in update_columns
    )
    return (
        f"INSERT INTO {quote_identifier(table)} ({cols}) VALUES ({placeholders}) "
        f"ON CONFLICT({target}) DO UPDATE SET {sets}"
    )


def insert_row(table: str, columns: Sequence[str]) -> str:
    """Plain INSERT of one row, one ? per column."""
    if not columns:
        raise ValueError("insert_row needs at least one column")
    cols = ", ".join(quote_all(columns))
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {quote_identifier(table)} ({cols}) VALUES ({placeholders})"


def create_unique_index(table: str, key_columns: Sequence[str]) -> str:
    """CREATE UNIQUE INDEX statement a table needs for the upsert conflict target."""
    validate_identifier(table)
    name = "idx_" + "_".join([table.lower()] + [validate_identifier(c).lower() for c in key_columns])
    cols = ", ".join(quote_all(key_columns))
    return f"CREATE UNIQUE INDEX IF NOT EXISTS {quote_identifier(name)} ON {quote_identifier(table)} ({cols})"
