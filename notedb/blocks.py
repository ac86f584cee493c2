"""
Block configuration parser.

Turns the raw text of a declarative block (line-oriented ``key: value``
pairs) or the attribute mapping of a widget placeholder into a typed
configuration. The variant is decided at parse time:

    RowQuery | PieChart | TimeSeriesChart | CounterBinding | SwitchBinding | TextBinding

Block parsers return ``None`` when a mandatory key is missing or the filter
lists are inconsistent; they never return a partial object. Widget attribute
parsing raises ``ConfigError`` naming every missing attribute, so the widget
can show a config-specific message.

All functions here are pure.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import ConfigError
from .safe_sql import validate_identifier

logger = logging.getLogger(__name__)

DATE_SENTINEL = "@date"
_ISO_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_CHART_OPTION_RE = re.compile(r"(\w+):\s*([^,]+),?$")
_LEADING_INT_RE = re.compile(r"[+-]?[0-9]+")

ORDER_DIRECTIONS = ("asc", "desc")
DISPLAY_FORMATS = ("list", "table")
CHART_TYPES = ("pie", "line", "bar")
VALUE_FORMATS = ("duration", "number")


class BlockKind(str, Enum):
    SQL = "sql"
    CHART = "chart"
    COUNTER = "counter"
    SWITCH = "switch"
    TEXT = "text"
    ADD_TEXT = "add-text"


class ModalType(str, Enum):
    TIME_PICKER = "time-picker"
    DATE_PICKER = "date-picker"
    NONE = "none"


# =============================================================================
# CONFIG VARIANTS
# =============================================================================


@dataclass(frozen=True)
class RowQuery:
    table: str
    columns: tuple[str, ...] = ()
    filter_columns: tuple[str, ...] = ()
    filter_values: tuple[str, ...] = ()
    date_column: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    order_by: str | None = None
    order_direction: str = "asc"
    limit: int | None = None
    display_format: str = "list"


@dataclass(frozen=True)
class PieChart:
    table: str
    category_column: str
    value_column: str
    date_column: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    chart_options: dict[str, Any] = field(default_factory=dict)
    value_format: str | None = None
    chart_type: str = "pie"


@dataclass(frozen=True)
class TimeSeriesChart:
    chart_type: str
    table: str
    x_column: str
    y_columns: tuple[str, ...]
    category_column: str | None = None
    date_column: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    chart_options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CounterBinding:
    """A non-negative integer per (key, date) row."""

    table: str
    key: str
    key_column: str
    value_column: str
    date_column: str
    date: str = DATE_SENTINEL
    label: str = ""

    @property
    def follows_selection(self) -> bool:
        return self.date == DATE_SENTINEL

    @property
    def natural_key_columns(self) -> tuple[str, ...]:
        return (self.key_column, self.date_column)

    def natural_key_values(self, effective_date: str) -> list:
        return [self.key, effective_date]


@dataclass(frozen=True)
class SwitchBinding(CounterBinding):
    """A 0/1 flag per (key, date) row."""

    pass


@dataclass(frozen=True)
class TextBinding:
    """A free-text value per date row."""

    table: str
    value_column: str
    date_column: str
    date: str = DATE_SENTINEL
    label: str = ""
    placeholder: str = ""
    initial_value: str = ""
    modal_type: ModalType = ModalType.NONE

    @property
    def key(self) -> str:
        return self.table

    @property
    def follows_selection(self) -> bool:
        return self.date == DATE_SENTINEL

    @property
    def natural_key_columns(self) -> tuple[str, ...]:
        return (self.date_column,)

    def natural_key_values(self, effective_date: str) -> list:
        return [effective_date]


@dataclass(frozen=True)
class AddTextBinding:
    """Append-only text entry: every submission inserts a new row.

    ``extra_values`` are (column, raw value) pairs written alongside the text;
    their placeholders are resolved when the entry is added, not when parsed.
    """

    table: str
    text_column: str
    extra_values: tuple[tuple[str, str], ...] = ()
    button_text: str = ""

    @property
    def key(self) -> str:
        return self.table

    @property
    def label(self) -> str:
        return self.button_text or f"Add Entry to {self.table}"

    @property
    def follows_selection(self) -> bool:
        return False


ChartConfig = Union[PieChart, TimeSeriesChart]
Binding = Union[CounterBinding, SwitchBinding, TextBinding]
BlockConfig = Union[
    RowQuery, PieChart, TimeSeriesChart, CounterBinding, SwitchBinding, TextBinding, AddTextBinding
]


# =============================================================================
# LINE GRAMMAR
# =============================================================================


def parse_key_values(source: str) -> list[tuple[str, str]]:
    """Split block text into (key, value) pairs.

    Blank lines and lines without a colon are skipped. Only the first colon
    separates key from value, so values may themselves contain colons.
    """
    pairs: list[tuple[str, str]] = []
    for line in source.split("\n"):
        trimmed = line.strip()
        if not trimmed or ":" not in trimmed:
            continue
        key, _, value = trimmed.partition(":")
        pairs.append((key.strip(), value.strip()))
    return pairs


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(v.strip() for v in value.split(","))


def _coerce_option(raw: str) -> Any:
    value = raw.strip()
    if value == "true":
        return True
    if value == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def is_iso_date(value: str | None) -> bool:
    return bool(value) and bool(_ISO_DATE_RE.fullmatch(value))


# =============================================================================
# ROW QUERY
# =============================================================================


def parse_row_query(source: str) -> RowQuery | None:
    """Parse a row-query block. Returns None when ``table`` is missing or filters mismatch."""
    params: dict[str, Any] = {}

    for key, val in parse_key_values(source):
        if key == "table":
            params["table"] = val
        elif key == "columns":
            params["columns"] = tuple(c for c in _split_list(val) if c)
        elif key == "filterColumn":
            params["filter_columns"] = _split_list(val)
        elif key == "filterValue":
            params["filter_values"] = _split_list(val)
        elif key == "dateColumn":
            params["date_column"] = val
        elif key == "startDate":
            params["start_date"] = val
        elif key == "endDate":
            params["end_date"] = val
        elif key == "orderBy":
            params["order_by"] = val
        elif key == "orderDirection":
            if val.lower() in ORDER_DIRECTIONS:
                params["order_direction"] = val.lower()
        elif key == "limit":
            # leading digits count, so "10 rows" is 10
            match = _LEADING_INT_RE.match(val)
            if match:
                params["limit"] = int(match.group())
            else:
                logger.warning("Ignoring non-integer limit %r", val)
        elif key == "displayFormat":
            fmt = val.lower()
            if fmt in DISPLAY_FORMATS:
                params["display_format"] = fmt
            else:
                logger.warning("Invalid displayFormat %r, defaulting to 'list'", val)
                params["display_format"] = "list"

    if not params.get("table"):
        return None

    filter_columns = params.get("filter_columns", ())
    filter_values = params.get("filter_values", ())
    if len(filter_columns) != len(filter_values):
        logger.error(
            "Mismatch between filterColumn (%d) and filterValue (%d) entries",
            len(filter_columns),
            len(filter_values),
        )
        return None

    return RowQuery(**params)


# =============================================================================
# CHARTS
# =============================================================================


def parse_chart(source: str) -> ChartConfig | None:
    """Parse a chart block, including its nested ``chartOptions: { ... }`` sub-block."""
    params: dict[str, Any] = {}
    chart_options: dict[str, Any] = {}
    in_options = False

    for line in source.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue

        if trimmed == "chartOptions: {":
            in_options = True
            continue
        if trimmed == "}":
            in_options = False
            continue

        if in_options:
            match = _CHART_OPTION_RE.match(trimmed)
            if match:
                chart_options[match.group(1)] = _coerce_option(match.group(2))
            continue

        if ":" not in trimmed:
            continue
        key, _, val = trimmed.partition(":")
        key, val = key.strip(), val.strip()
        params[key] = _split_list(val) if key == "yColumns" else val

    table = params.get("table")
    chart_type = params.get("chartType")
    if not table or not chart_type:
        return None

    common = {
        "table": table,
        "date_column": params.get("dateColumn") or None,
        "start_date": params.get("startDate") or None,
        "end_date": params.get("endDate") or None,
        "chart_options": chart_options,
    }

    if chart_type == "pie":
        if not params.get("categoryColumn") or not params.get("valueColumn"):
            return None
        value_format = params.get("valueFormat")
        if value_format is not None and value_format not in VALUE_FORMATS:
            logger.warning("Unknown valueFormat %r ignored", value_format)
            value_format = None
        return PieChart(
            category_column=params["categoryColumn"],
            value_column=params["valueColumn"],
            value_format=value_format,
            **common,
        )

    if chart_type in ("line", "bar"):
        y_columns = tuple(c for c in params.get("yColumns", ()) if c)
        if not params.get("xColumn") or not y_columns:
            return None
        return TimeSeriesChart(
            chart_type=chart_type,
            x_column=params["xColumn"],
            y_columns=y_columns,
            category_column=params.get("categoryColumn") or None,
            **common,
        )

    logger.warning("Unsupported chartType %r", chart_type)
    return None


# =============================================================================
# WIDGET ATTRIBUTES
# =============================================================================

# canonical attribute -> accepted spellings, first match wins
_COUNTER_ATTRS = {
    "table": ("table",),
    "key": ("key", "habit"),
    "key_column": ("data-key-col", "data-habit-id-col"),
    "value_column": ("data-value-col",),
    "date_column": ("data-date-col",),
}
_TEXT_ATTRS = {
    "table": ("table",),
    "value_column": ("data-value-col",),
    "date_column": ("data-date-col",),
}
_ADD_TEXT_ATTRS = {
    "table": ("data-table", "table"),
    "text_column": ("data-column", "column"),
}
# data-* attributes that configure an add-text widget rather than name a column
_ADD_TEXT_RESERVED = ("data-table", "data-column", "data-button-text", "data-processed")
_DATA_PREFIX = "data-"
_IDENTIFIER_FIELDS = ("table", "key_column", "value_column", "date_column", "text_column")


def _read(attributes: Mapping[str, Any], names: tuple[str, ...]) -> str:
    for name in names:
        value = attributes.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _read_required(kind: str, attributes: Mapping[str, Any], spec: dict) -> dict[str, str]:
    values = {name: _read(attributes, aliases) for name, aliases in spec.items()}
    missing = [spec[name][0] for name, value in values.items() if not value]
    if missing:
        raise ConfigError(f"{kind} widget is missing required attributes: {', '.join(missing)}")
    for name in _IDENTIFIER_FIELDS:
        if name in values:
            validate_identifier(values[name])
    return values


def _read_date(kind: str, attributes: Mapping[str, Any]) -> str:
    date = _read(attributes, ("date",)) or DATE_SENTINEL
    if date != DATE_SENTINEL and not is_iso_date(date):
        raise ConfigError(f"{kind} widget has an invalid date attribute {date!r} (expected YYYY-MM-DD or @date)")
    return date


def _dataset_column(attribute: str) -> str:
    """``data-habit-id`` -> ``habitId``, the way a DOM dataset names it."""
    return re.sub(r"-([a-z])", lambda m: m.group(1).upper(), attribute[len(_DATA_PREFIX):])


def _read_extra_values(attributes: Mapping[str, Any]) -> tuple[tuple[str, str], ...]:
    extra = []
    for name, value in attributes.items():
        if not name.startswith(_DATA_PREFIX) or name in _ADD_TEXT_RESERVED or value is None:
            continue
        extra.append((validate_identifier(_dataset_column(name)), str(value)))
    return tuple(extra)


def parse_binding(kind: BlockKind | str, attributes: Mapping[str, Any]) -> Binding | AddTextBinding:
    """Build a widget binding from its declarative attributes. Raises ConfigError."""
    kind = BlockKind(kind)

    if kind in (BlockKind.COUNTER, BlockKind.SWITCH):
        values = _read_required(kind.value, attributes, _COUNTER_ATTRS)
        cls = CounterBinding if kind is BlockKind.COUNTER else SwitchBinding
        return cls(
            date=_read_date(kind.value, attributes),
            label=_read(attributes, ("label", "emoji")),
            **values,
        )

    if kind is BlockKind.TEXT:
        values = _read_required(kind.value, attributes, _TEXT_ATTRS)
        modal = _read(attributes, ("modal", "data-modal")) or ModalType.NONE.value
        try:
            modal_type = ModalType(modal)
        except ValueError:
            raise ConfigError(f"text widget has an unknown modal type {modal!r}") from None
        return TextBinding(
            date=_read_date(kind.value, attributes),
            label=_read(attributes, ("label",)),
            placeholder=_read(attributes, ("placeholder",)),
            initial_value=_read(attributes, ("value",)),
            modal_type=modal_type,
            **values,
        )

    if kind is BlockKind.ADD_TEXT:
        values = _read_required(kind.value, attributes, _ADD_TEXT_ATTRS)
        return AddTextBinding(
            extra_values=_read_extra_values(attributes),
            button_text=_read(attributes, ("data-button-text", "button-text")),
            **values,
        )

    raise ConfigError(f"{kind.value} is not a widget kind")
