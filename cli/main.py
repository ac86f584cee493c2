#!/usr/bin/env python3
"""
NoteDB CLI.

Commands:
- render FILE [--kind sql|chart] [--date YYYY-MM-DD] [--period P]
- tables
- inspect TABLE
- period DATE PERIOD
- serve [--host] [--port]

Settings come from settings.yaml in the config dir and NOTEDB_* variables;
--settings and --db override them. --log-level overrides the log_level setting.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from notedb.backends import open_backend
from notedb.config import load_settings
from notedb.errors import NoteDBError
from notedb.observability import configure_logging
from notedb.periods import Period, calculate_period_range, format_period_for_display, period_id
from notedb.processors import inspect_table
from notedb.runtime import NoteDBRuntime

logger = logging.getLogger(__name__)

CHART_HINTS = ("chartType:", "xColumn:", "yColumns:")


def guess_kind(source: str) -> str:
    """A block with chart keys is a chart block, anything else a row query."""
    return "chart" if any(hint in source for hint in CHART_HINTS) else "sql"


def _settings(args):
    settings = load_settings(args.settings)
    if args.db:
        settings = replace(settings, mode="local", db_file_path=args.db)
    return settings


def cmd_render(args, settings) -> int:
    source = Path(args.file).read_text(encoding="utf-8")
    kind = args.kind or guess_kind(source)
    with NoteDBRuntime(settings) as runtime:
        if args.date or args.period:
            runtime.selection.set(selected_date=args.date, period=args.period)
        result = runtime.render_block(kind, source)
    print(result.to_text())
    return 0 if result.ok else 1


def cmd_tables(args, settings) -> int:
    with open_backend(settings) as backend:
        tables = backend.list_tables()
    if not tables:
        print("No tables found in the DB.")
        return 0
    for name in tables:
        print(name)
    return 0


def cmd_inspect(args, settings) -> int:
    with open_backend(settings) as backend:
        inspection = inspect_table(backend, args.table)
    if not inspection.columns:
        print(f'Table "{args.table}" does not exist.')
        return 1
    print(inspection.to_text())
    return 0


def cmd_period(args, settings) -> int:
    rng = calculate_period_range(args.date, args.period)
    print(format_period_for_display(args.date, args.period))
    print(f"id:    {period_id(args.date, args.period)}")
    print(f"start: {rng.start}")
    print(f"end:   {rng.end}")
    return 0


def cmd_serve(args, settings) -> int:
    import uvicorn

    from api.server import create_app

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="notedb", description="Declarative SQL blocks over a SQLite database")
    p.add_argument("--settings", help="Path to settings.yaml")
    p.add_argument("--db", help="Embedded database file (forces local mode)")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    p.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("render", help="Render a block file")
    r.add_argument("file")
    r.add_argument("--kind", choices=("sql", "chart"), help="Block kind (guessed from the keys if omitted)")
    r.add_argument("--date", help="Selected date, YYYY-MM-DD")
    r.add_argument("--period", choices=[period.value for period in Period])
    r.set_defaults(func=cmd_render)

    t = sub.add_parser("tables", help="List tables")
    t.set_defaults(func=cmd_tables)

    i = sub.add_parser("inspect", help="Show a table's columns and first row")
    i.add_argument("table")
    i.set_defaults(func=cmd_inspect)

    pr = sub.add_parser("period", help="Show the bounds of the period containing a date")
    pr.add_argument("date")
    pr.add_argument("period", choices=[period.value for period in Period])
    pr.set_defaults(func=cmd_period)

    s = sub.add_parser("serve", help="Run the HTTP API")
    s.add_argument("--host", default="127.0.0.1")
    s.add_argument("--port", type=int, default=8765)
    s.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = _settings(args)
    except (NoteDBError, OSError) as e:
        configure_logging(args.log_level or "WARNING", json_format=args.json_logs)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(args.log_level or settings.log_level, json_format=args.json_logs)
    try:
        return args.func(args, settings)
    except NoteDBError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
