"""
Schema validation against the live database.

Runs strictly before query compilation: it fetches the table's column
metadata and rejects configurations that reference unknown columns. All
invalid names are reported in one result, together with the full list of
available columns, so the user sees every problem at once.
"""

import logging
from dataclasses import dataclass, field

from .backends import DataAccess
from .blocks import BlockConfig, PieChart, RowQuery, TimeSeriesChart
from .errors import SchemaValidationError, TransientBackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationError:
    """Terminal validation result; consumers must stop and surface it."""

    message: str
    available_columns: list[str] = field(default_factory=list)

    def to_exception(self) -> SchemaValidationError:
        return SchemaValidationError(self.message, self.available_columns)


def referenced_columns(config: BlockConfig) -> list[str]:
    """Every column name the config references, in first-seen order."""
    names: list[str] = []

    if isinstance(config, RowQuery):
        names.extend(config.columns)
        names.extend(config.filter_columns)
        if config.date_column:
            names.append(config.date_column)
        if config.order_by:
            names.append(config.order_by)
    elif isinstance(config, PieChart):
        names.extend([config.category_column, config.value_column])
        if config.date_column:
            names.append(config.date_column)
    elif isinstance(config, TimeSeriesChart):
        names.append(config.x_column)
        names.extend(config.y_columns)
        if config.category_column:
            names.append(config.category_column)
        if config.date_column:
            names.append(config.date_column)

    return list(dict.fromkeys(names))


def validate(backend: DataAccess, config: BlockConfig) -> ValidationError | None:
    """Check that ``config.table`` exists and has every referenced column.

    Returns None when the config is valid.
    """
    table = config.table
    try:
        available = backend.table_columns(table)
    except TransientBackendError as e:
        logger.error("Failed to fetch columns for table %r: %s", table, e)
        return ValidationError(f'Error fetching column info for table "{table}": {e}')

    if not available:
        return ValidationError(f'Table "{table}" does not exist or has no columns.')

    invalid = [name for name in referenced_columns(config) if name not in available]
    if invalid:
        return ValidationError(
            f'The following columns do not exist in table "{table}": {", ".join(invalid)}.',
            list(available),
        )
    return None


def ensure_valid(backend: DataAccess, config: BlockConfig) -> None:
    """Raise SchemaValidationError instead of returning the result."""
    error = validate(backend, config)
    if error is not None:
        raise error.to_exception()
