"""
Query compiler.

Turns a validated block configuration into a parameterized SQL statement
plus a positional parameter list. The compiler assumes the schema validator
has already confirmed every referenced column exists; it still quotes every
identifier through safe_sql, so an unsafe name fails here with
InvalidIdentifier instead of reaching the database.

Date ranges are inclusive of the whole end day: the upper bound is the day
after the supplied end date, compared with a strict ``<``, so timestamps such
as ``2024-01-31T23:59:59`` fall inside ``endDate: 2024-01-31``.

WHERE clause ordering is fixed: filter conditions first, then the date range.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from .blocks import BlockConfig, PieChart, RowQuery, TimeSeriesChart, is_iso_date
from .errors import ConfigError
from .safe_sql import quote_identifier

# Tables whose ``duration`` column holds HH:MM:SS strings rather than numbers.
DURATION_TABLES = ("time",)
DURATION_COLUMN = "duration"


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: list[Any] = field(default_factory=list)

    @property
    def placeholder_count(self) -> int:
        return self.sql.count("?")


# ============================================================
# DATE RANGE
# ============================================================


def parse_iso_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string. Raises ConfigError on malformed input."""
    if not isinstance(value, str) or not is_iso_date(value):
        raise ConfigError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ConfigError(f"Invalid date: {value!r}") from None


def next_day(iso_date: str) -> str:
    """The calendar day after *iso_date*, as ``YYYY-MM-DD``."""
    try:
        return (parse_iso_date(iso_date) + timedelta(days=1)).isoformat()
    except OverflowError:
        raise ConfigError(f"No day after {iso_date}") from None


def date_range_clause(
    column: str | None, start_date: str | None, end_date: str | None
) -> tuple[str, list[str]] | None:
    """``"col" >= ? AND "col" < ?`` with [start, end + 1 day], or None if any part is absent.

    An end of 9999-12-31 has no following day; the range is then open-ended.
    """
    if not column or not start_date or not end_date:
        return None
    parse_iso_date(start_date)
    col = quote_identifier(column)
    if parse_iso_date(end_date) == date.max:
        return f"{col} >= ?", [start_date]
    return f"{col} >= ? AND {col} < ?", [start_date, next_day(end_date)]


# ============================================================
# ROW QUERIES
# ============================================================


def _compile_row_query(config: RowQuery) -> CompiledQuery:
    select_cols = ", ".join(quote_identifier(c) for c in config.columns) if config.columns else "*"
    conditions: list[str] = []
    params: list[Any] = []

    for column, value in zip(config.filter_columns, config.filter_values, strict=True):
        conditions.append(f"{quote_identifier(column)} = ?")
        params.append(value)

    date_filter = date_range_clause(config.date_column, config.start_date, config.end_date)
    if date_filter:
        conditions.append(date_filter[0])
        params.extend(date_filter[1])

    sql = f"SELECT {select_cols} FROM {quote_identifier(config.table)}"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    if config.order_by:
        direction = "DESC" if config.order_direction.lower() == "desc" else "ASC"
        sql += f" ORDER BY {quote_identifier(config.order_by)} {direction}"
    if config.limit is not None:
        sql += " LIMIT ?"
        params.append(config.limit)

    return CompiledQuery(sql, params)


# ============================================================
# CHARTS
# ============================================================


def is_duration_pie(config: PieChart) -> bool:
    """Whether the pie's value column is summed as HH:MM:SS elapsed seconds.

    An explicit ``valueFormat`` wins; otherwise the ``Time.duration``
    convention applies.
    """
    if config.value_format == "duration":
        return True
    if config.value_format == "number":
        return False
    return config.table.lower() in DURATION_TABLES and config.value_column == DURATION_COLUMN


def _aggregate_expression(config: PieChart) -> str:
    col = quote_identifier(config.value_column)
    if is_duration_pie(config):
        return (
            f"SUM(strftime('%s', '1970-01-01T' || {col}) "
            f"- strftime('%s', '1970-01-01T00:00:00'))"
        )
    return f"SUM({col})"


def _where(config: PieChart | TimeSeriesChart, params: list[Any]) -> str:
    date_filter = date_range_clause(config.date_column, config.start_date, config.end_date)
    if not date_filter:
        return ""
    params.extend(date_filter[1])
    return f" WHERE {date_filter[0]}"


def _compile_pie(config: PieChart) -> CompiledQuery:
    params: list[Any] = []
    category = quote_identifier(config.category_column)
    sql = f"SELECT {category}, {_aggregate_expression(config)} AS value FROM {quote_identifier(config.table)}"
    sql += _where(config, params)
    sql += f" GROUP BY {category} ORDER BY value DESC"
    return CompiledQuery(sql, params)


def _compile_time_series(config: TimeSeriesChart) -> CompiledQuery:
    params: list[Any] = []
    x_col = quote_identifier(config.x_column)
    select = [x_col]
    order = [x_col]
    if config.category_column:
        category = quote_identifier(config.category_column)
        select.append(category)
        order.append(category)
    select.extend(quote_identifier(c) for c in config.y_columns)

    sql = f"SELECT {', '.join(select)} FROM {quote_identifier(config.table)}"
    sql += _where(config, params)
    sql += f" ORDER BY {', '.join(order)}"
    return CompiledQuery(sql, params)


def compile_query(config: BlockConfig) -> CompiledQuery:
    """Compile a row-query or chart configuration. Pure and deterministic."""
    if isinstance(config, RowQuery):
        return _compile_row_query(config)
    if isinstance(config, PieChart):
        return _compile_pie(config)
    if isinstance(config, TimeSeriesChart):
        return _compile_time_series(config)
    raise ConfigError(f"Cannot compile a {type(config).__name__} into a query")
