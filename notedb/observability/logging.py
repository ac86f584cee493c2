"""
Log formatting for NoteDB.

Two formatters share one record shape: a JSON line per record for log
collectors, and a single readable line for terminals. Both carry the render
ID of the block or widget being processed, when there is one.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .context import get_render_id

# Attributes every LogRecord has; anything else came in through extra={...}.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"timestamp": "2024-06-13T10:30:00.000Z", "level": "INFO",
         "logger": "notedb.processors", "message": "Rendered sql block on tasks: 3 rows",
         "render_id": "sql-1f2e3d4c5b6a", ...extra}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        render_id = get_render_id()
        if render_id:
            entry["render_id"] = render_id
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """``2024-06-13 10:30:00 [INFO] notedb.widgets: [counter-ab12] message``"""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        render_id = get_render_id()
        prefix = f"[{render_id}] " if render_id else ""
        text = f"{stamp} [{record.levelname}] {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def configure_logging(level: str = "INFO", json_format: bool | None = None) -> None:
    """
    Send all logging to stderr through one handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        json_format: JSON lines when True, readable lines when False.
            None picks readable lines on a terminal and JSON otherwise.
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    level_no = getattr(logging, level.upper(), None)
    root.setLevel(level_no if isinstance(level_no, int) else logging.INFO)
