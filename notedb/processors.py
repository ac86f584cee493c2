"""
Block processors.

Each processor runs the full pipeline for one declarative block:

    placeholders -> parse -> validate -> compile -> execute -> result

and never raises for problems the user can fix in the block text. Those come
back as a BlockError the host renders in place of the block. Only errors
nothing in the block could cause (programming errors) propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .backends import DataAccess, ResultSet, run_compiled
from .blocks import BlockConfig, BlockKind, parse_chart, parse_key_values, parse_row_query
from .chart_data import ChartSpec, process_chart_data
from .compiler import CompiledQuery, compile_query
from .errors import ConfigError, NoteDBError
from .observability import RenderContext
from .placeholders import replace_placeholders
from .safe_sql import sample_rows, validate_identifier
from .schema_validator import validate
from .selection import SelectionState

logger = logging.getLogger(__name__)

SQL_USAGE = """table: tasks
columns: title, status
filterColumn: status, priority
filterValue: active, high
dateColumn: dueDate
startDate: 2024-01-01
endDate: 2024-12-31
limit: 10
orderBy: dueDate
orderDirection: asc"""

PIE_REQUIREMENTS = "Required parameters for pie chart are: table, categoryColumn, valueColumn"
SERIES_REQUIREMENTS = "Required parameters are: table, chartType, xColumn, yColumns"
MISSING_TABLE = "Missing required parameter: table"
FILTER_MISMATCH = "Mismatch between filterColumn and filterValue entries."
NO_ROWS = "No rows found matching the criteria."
NO_CHART_DATA = "No data found for the specified parameters."
INSPECT_SAMPLE_SIZE = 10


@dataclass(frozen=True)
class BlockError:
    """What the host shows instead of a block's output."""

    message: str
    available_columns: list[str] = field(default_factory=list)
    query: str | None = None
    params: list[Any] | None = None
    usage: str | None = None
    detail: str | None = None

    def lines(self) -> list[str]:
        out = [self.message]
        if self.detail:
            out.append(self.detail)
        if self.available_columns:
            out.append(f"Available columns are: {', '.join(self.available_columns)}")
        if self.usage:
            out.append("Example usage:")
            out.append(self.usage)
        if self.query is not None:
            out.append(f"Query: {self.query}")
            out.append(f"Params: {self.params}")
        return out


@dataclass
class BlockResult:
    kind: BlockKind
    config: BlockConfig | None = None
    result: ResultSet | None = None
    chart: ChartSpec | None = None
    error: BlockError | None = None
    notice: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def display_format(self) -> str:
        return getattr(self.config, "display_format", "list")

    def to_text(self) -> str:
        """Plain-text rendering for terminals."""
        if self.error is not None:
            return "\n".join(self.error.lines())
        if self.notice is not None:
            return self.notice
        if self.chart is not None:
            return render_chart_summary(self.chart)
        if self.display_format == "table":
            return render_table(self.result)
        return render_list(self.result)


# ============================================================
# RENDERING
# ============================================================


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def render_list(result: ResultSet) -> str:
    """One ``column: value`` line per column, rows separated by a blank line."""
    blocks = []
    for row in result.rows:
        blocks.append("\n".join(f"{col}: {_cell(val)}" for col, val in zip(result.columns, row, strict=True)))
    return "\n\n".join(blocks)


def render_table(result: ResultSet) -> str:
    """Markdown table. Pipes inside values are escaped."""

    def fmt(values) -> str:
        return "| " + " | ".join(_cell(v).replace("|", "\\|") for v in values) + " |"

    lines = [fmt(result.columns), "| " + " | ".join("---" for _ in result.columns) + " |"]
    lines.extend(fmt(row) for row in result.rows)
    return "\n".join(lines)


def render_chart_summary(chart: ChartSpec) -> str:
    lines = [f"{chart.type} chart, {len(chart.labels)} labels"]
    for dataset in chart.datasets:
        lines.append(f"{dataset['label']}: {dataset['data']}")
    return "\n".join(lines)


# ============================================================
# PIPELINE
# ============================================================


def _prepare(source: str, selection: SelectionState | None) -> str:
    if selection is None:
        return source
    return replace_placeholders(source, selection.snapshot())


def _criteria_summary(config) -> str:
    summary = f'Table: "{config.table}"'
    if config.start_date or config.end_date:
        summary += f" | Dates: {config.start_date} to {config.end_date}"
    if config.filter_columns:
        summary += f" | Filter: {','.join(config.filter_columns)}={','.join(config.filter_values)}"
    return f"Criteria: {summary}"


def _execute(
    backend: DataAccess, config: BlockConfig, failure: str
) -> tuple[ResultSet | None, BlockError | None]:
    """Validate, compile and run *config*. Exactly one of the pair is set."""
    try:
        invalid = validate(backend, config)
    except ConfigError as e:
        logger.info("Block rejected: %s", e)
        return None, BlockError(str(e))
    if invalid is not None:
        logger.info("Block rejected by schema validation: %s", invalid.message)
        return None, BlockError(invalid.message, invalid.available_columns)

    compiled: CompiledQuery | None = None
    try:
        compiled = compile_query(config)
        logger.debug("Compiled query: %s %s", compiled.sql, compiled.params)
        return run_compiled(backend, compiled), None
    except NoteDBError as e:
        logger.error("%s %s", failure, e)
        return None, BlockError(
            failure,
            detail=str(e),
            query=compiled.sql if compiled else None,
            params=compiled.params if compiled else None,
        )


def process_sql_block(backend: DataAccess, source: str, selection: SelectionState | None = None) -> BlockResult:
    """Render a row-query block."""
    with RenderContext(prefix="sql"):
        prepared = _prepare(source, selection)
        config = parse_row_query(prepared)
        if config is None:
            message = FILTER_MISMATCH if dict(parse_key_values(prepared)).get("table") else MISSING_TABLE
            return BlockResult(BlockKind.SQL, error=BlockError(message, usage=SQL_USAGE))

        result, error = _execute(backend, config, "An error occurred processing the SQL block.")
        if error is not None:
            return BlockResult(BlockKind.SQL, config, error=error)
        if not result.rows:
            return BlockResult(BlockKind.SQL, config, result, notice=f"{NO_ROWS}\n{_criteria_summary(config)}")

        logger.info("Rendered sql block on %s: %d rows", config.table, len(result))
        return BlockResult(BlockKind.SQL, config, result)


def process_chart_block(backend: DataAccess, source: str, selection: SelectionState | None = None) -> BlockResult:
    """Render a chart block into a ChartSpec."""
    with RenderContext(prefix="chart"):
        prepared = _prepare(source, selection)
        config = parse_chart(prepared)
        if config is None:
            chart_type = dict(parse_key_values(prepared)).get("chartType")
            message = PIE_REQUIREMENTS if chart_type == "pie" else SERIES_REQUIREMENTS
            return BlockResult(BlockKind.CHART, error=BlockError(message))

        result, error = _execute(backend, config, "An error occurred while processing the chart.")
        if error is not None:
            return BlockResult(BlockKind.CHART, config, error=error)
        if not result.rows:
            return BlockResult(BlockKind.CHART, config, result, notice=NO_CHART_DATA)

        chart = process_chart_data(result, config)
        logger.info("Rendered %s chart on %s: %d labels", chart.type, config.table, len(chart.labels))
        return BlockResult(BlockKind.CHART, config, result, chart=chart)


# ============================================================
# INSPECTION
# ============================================================


@dataclass(frozen=True)
class TableInspection:
    table: str
    columns: list[str]
    first_row: dict[str, Any] | None

    def to_text(self) -> str:
        if self.first_row is None:
            return f"No rows found in table {self.table}."
        return (
            f'**Columns in "{self.table}"**\n'
            f"{', '.join(self.columns)}\n\n"
            f"**First row**\n"
            f"{', '.join(_cell(self.first_row.get(c)) for c in self.columns)}"
        )


def inspect_table(backend: DataAccess, table: str) -> TableInspection:
    """Column names of *table* plus its first row, if any."""
    validate_identifier(table)
    columns = backend.table_columns(table)
    if not columns:
        return TableInspection(table, [], None)
    rows = backend.execute(sample_rows(table), [INSPECT_SAMPLE_SIZE])
    return TableInspection(table, columns, rows[0] if rows else None)
