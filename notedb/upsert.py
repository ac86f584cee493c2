"""
Widget record store: reads and idempotent upserts for widget bindings.

A widget record is a row keyed by (key column, date column), or by the date
column alone for text bindings, holding one value column. Two optional
columns are detected at runtime rather than declared:

- ``uuid``: a surrogate key. When present and the row exists, the row is
  updated by uuid.
- ``updatedAt``: written with the current UTC timestamp when present.
- ``createdAt``: written once, when ``insert_entry`` adds a row.

Otherwise the write is an ``INSERT ... ON CONFLICT(<natural key>) DO UPDATE``,
which needs a UNIQUE index over the natural key columns. A missing index is a
deployment precondition this layer cannot fix; it is reported as a
ConstraintError carrying the CREATE UNIQUE INDEX statement.

Capabilities are read once per table with PRAGMA table_info and cached for
the session. The string-matched "no such column" fallback on the uuid lookup is
kept as a last resort for tables altered after the cache was filled.

No retries anywhere.
"""

import logging
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from . import safe_sql
from .backends import DataAccess
from .blocks import Binding, SwitchBinding, TextBinding
from .errors import ConstraintError, TransientBackendError

logger = logging.getLogger(__name__)

_NO_SUCH_COLUMN_RE = re.compile(r"no such column|does not exist", re.IGNORECASE)
_CONFLICT_MISMATCH = "ON CONFLICT clause does not match"


@dataclass(frozen=True)
class TableCapabilities:
    has_surrogate_key: bool
    has_updated_at: bool
    has_created_at: bool = False


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with milliseconds, e.g. ``2024-06-13T08:15:30.123Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def is_missing_surrogate_key_error(error: Exception) -> bool:
    message = str(error)
    return bool(_NO_SUCH_COLUMN_RE.search(message)) and safe_sql.SURROGATE_KEY_COLUMN in message


class RecordStore:
    """Reads and upserts widget values through the Data Access contract."""

    def __init__(self, backend: DataAccess, clock=utc_timestamp):
        self.backend = backend
        self._clock = clock
        self._capabilities: dict[str, TableCapabilities] = {}
        self._lock = threading.Lock()

    # ==================== Capability detection ====================

    def capabilities(self, table: str) -> TableCapabilities:
        """Which optional columns *table* has. Read once, then cached."""
        with self._lock:
            cached = self._capabilities.get(table)
        if cached is not None:
            return cached

        columns = set(self.backend.table_columns(table))
        caps = TableCapabilities(
            has_surrogate_key=safe_sql.SURROGATE_KEY_COLUMN in columns,
            has_updated_at=safe_sql.UPDATED_AT_COLUMN in columns,
            has_created_at=safe_sql.CREATED_AT_COLUMN in columns,
        )
        logger.debug("Capabilities for %s: %s", table, caps)
        with self._lock:
            self._capabilities[table] = caps
        return caps

    def forget(self, table: str | None = None) -> None:
        """Drop cached capabilities for *table*, or for every table."""
        with self._lock:
            if table is None:
                self._capabilities.clear()
            else:
                self._capabilities.pop(table, None)

    def _without_surrogate_key(self, table: str, caps: TableCapabilities) -> TableCapabilities:
        corrected = replace(caps, has_surrogate_key=False)
        with self._lock:
            self._capabilities[table] = corrected
        return corrected

    # ==================== Reads ====================

    def fetch_value(self, binding: Binding, effective_date: str) -> Any:
        """Current value for the binding's row on *effective_date*.

        Counters default to 0, switches to 0 unless the stored value is 1,
        text to the empty string.
        """
        sql = safe_sql.select_value(binding.table, binding.value_column, binding.natural_key_columns)
        rows = self.backend.execute(sql, binding.natural_key_values(effective_date))
        value = rows[0].get("value") if rows else None

        if isinstance(binding, TextBinding):
            return "" if value is None else str(value)
        if isinstance(binding, SwitchBinding):
            return 1 if value == 1 else 0
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 0
        return int(value)

    # ==================== Writes ====================

    def _find_surrogate_key(self, binding: Binding, effective_date: str) -> str | None:
        sql = safe_sql.select_surrogate_key(binding.table, binding.natural_key_columns)
        rows = self.backend.execute(sql, binding.natural_key_values(effective_date))
        if rows and rows[0].get(safe_sql.SURROGATE_KEY_COLUMN):
            return rows[0][safe_sql.SURROGATE_KEY_COLUMN]
        return None

    def upsert_value(self, binding: Binding, effective_date: str, new_value: Any) -> None:
        """Write *new_value* for the binding's row, creating the row if needed."""
        table = binding.table
        caps = self.capabilities(table)
        if isinstance(binding, TextBinding) and new_value == "":
            new_value = None

        existing_uuid = None
        if caps.has_surrogate_key:
            try:
                existing_uuid = self._find_surrogate_key(binding, effective_date)
            except TransientBackendError as e:
                if not is_missing_surrogate_key_error(e):
                    logger.error("Error probing uuid for %s on %s: %s", binding.key, effective_date, e)
                    raise
                logger.info(
                    "Optional '%s' column not found in table '%s'; using natural-key upsert",
                    safe_sql.SURROGATE_KEY_COLUMN,
                    table,
                )
                caps = self._without_surrogate_key(table, caps)

        set_columns = [binding.value_column]
        set_values = [new_value]
        if caps.has_updated_at:
            set_columns.append(safe_sql.UPDATED_AT_COLUMN)
            set_values.append(self._clock())

        if existing_uuid:
            sql = safe_sql.update_by_surrogate_key(table, set_columns)
            self.backend.run(sql, set_values + [existing_uuid])
            return

        key_columns = binding.natural_key_columns
        sql = safe_sql.insert_on_conflict(table, key_columns, set_columns)
        try:
            self.backend.run(sql, binding.natural_key_values(effective_date) + set_values)
        except TransientBackendError as e:
            if _CONFLICT_MISMATCH not in str(e):
                raise
            index_sql = safe_sql.create_unique_index(table, key_columns)
            logger.error("Table '%s' needs a UNIQUE index. Run: %s", table, index_sql)
            raise ConstraintError(
                f"Missing UNIQUE constraint on ({', '.join(key_columns)}) in table {table}. "
                f"Run: {index_sql}. {e}",
                index_sql,
            ) from e

    def insert_entry(self, table: str, values: Mapping[str, Any]) -> None:
        """Insert one new row. Fills uuid, createdAt and updatedAt when the table has them."""
        row = dict(values)
        caps = self.capabilities(table)
        now = self._clock()
        if caps.has_surrogate_key:
            row.setdefault(safe_sql.SURROGATE_KEY_COLUMN, str(uuid4()))
        if caps.has_created_at:
            row.setdefault(safe_sql.CREATED_AT_COLUMN, now)
        if caps.has_updated_at:
            row.setdefault(safe_sql.UPDATED_AT_COLUMN, now)

        sql = safe_sql.insert_row(table, list(row))
        self.backend.run(sql, list(row.values()))
        logger.debug("Inserted entry into %s: %s", table, ", ".join(row))
