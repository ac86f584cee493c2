"""
Tests for logging formatters and render IDs.
"""

import json
import logging

from notedb.observability import (
    HumanFormatter,
    JSONFormatter,
    RenderContext,
    configure_logging,
    get_render_id,
)


def _record(message="hello", **extra):
    record = logging.LogRecord("notedb.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRenderContext:
    def test_sets_and_restores(self):
        assert get_render_id() is None
        with RenderContext(prefix="sql") as outer:
            assert outer.render_id.startswith("sql-")
            with RenderContext(render_id="inner"):
                assert get_render_id() == "inner"
            assert get_render_id() == outer.render_id
        assert get_render_id() is None


class TestFormatters:
    def test_json_includes_render_id_and_extra(self):
        with RenderContext(render_id="chart-1"):
            payload = json.loads(JSONFormatter().format(_record(table="sales")))
        assert payload["message"] == "hello"
        assert payload["render_id"] == "chart-1"
        assert payload["table"] == "sales"
        assert payload["timestamp"].endswith("Z")

    def test_human(self):
        with RenderContext(render_id="sql-1"):
            line = HumanFormatter().format(_record())
        assert "[INFO] notedb.test: [sql-1] hello" in line

    def test_configure_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            configure_logging("debug", json_format=True)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
