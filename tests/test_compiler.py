"""
Tests for the query compiler.

Covers statement shape, parameter ordering, and the inclusive end-date rule
against a real embedded database.
"""

import pytest

from notedb.backends import run_compiled
from notedb.blocks import PieChart, RowQuery, TimeSeriesChart, parse_chart, parse_row_query
from notedb.compiler import CompiledQuery, compile_query, date_range_clause, is_duration_pie, next_day
from notedb.errors import ConfigError, InvalidIdentifier


class TestDateRange:
    @pytest.mark.parametrize(
        "day, expected",
        [
            ("2024-01-31", "2024-02-01"),
            ("2024-02-28", "2024-02-29"),
            ("2023-02-28", "2023-03-01"),
            ("2024-12-31", "2025-01-01"),
            ("2024-03-30", "2024-03-31"),
        ],
    )
    def test_next_day(self, day, expected):
        assert next_day(day) == expected

    def test_clause_needs_all_parts(self):
        assert date_range_clause("d", "2024-01-01", None) is None
        assert date_range_clause(None, "2024-01-01", "2024-01-02") is None

    def test_clause(self):
        assert date_range_clause("dueDate", "2024-01-01", "2024-01-31") == (
            '"dueDate" >= ? AND "dueDate" < ?',
            ["2024-01-01", "2024-02-01"],
        )

    @pytest.mark.parametrize("bad", ["20240101", "2024-1-1", "2024-02-30", "yesterday"])
    def test_malformed_dates_rejected(self, bad):
        with pytest.raises(ConfigError):
            date_range_clause("d", "2024-01-01", bad)

    def test_no_day_after_last_date(self):
        with pytest.raises(ConfigError, match="No day after 9999-12-31"):
            next_day("9999-12-31")

    def test_clause_open_ended_at_last_date(self):
        assert date_range_clause("dueDate", "2024-01-01", "9999-12-31") == ('"dueDate" >= ?', ["2024-01-01"])


class TestRowQueries:
    def test_select_star(self):
        assert compile_query(RowQuery(table="tasks")) == CompiledQuery('SELECT * FROM "tasks"', [])

    def test_filters_then_date_then_order_and_limit(self):
        config = RowQuery(
            table="tasks",
            columns=("title",),
            filter_columns=("status", "priority"),
            filter_values=("active", "high"),
            date_column="dueDate",
            start_date="2024-01-01",
            end_date="2024-01-31",
            order_by="dueDate",
            order_direction="desc",
            limit=5,
        )
        compiled = compile_query(config)
        assert compiled.sql == (
            'SELECT "title" FROM "tasks" WHERE "status" = ? AND "priority" = ? '
            'AND "dueDate" >= ? AND "dueDate" < ? ORDER BY "dueDate" DESC LIMIT ?'
        )
        assert compiled.params == ["active", "high", "2024-01-01", "2024-02-01", 5]
        assert compiled.placeholder_count == len(compiled.params)

    def test_unsafe_identifier_never_reaches_sql(self):
        with pytest.raises(InvalidIdentifier):
            compile_query(RowQuery(table="tasks", columns=("title; DROP TABLE tasks",)))

    def test_end_date_includes_whole_day(self, backend):
        """A timestamp late on the end date is inside the range; the next day is not."""
        config = parse_row_query(
            "table: tasks\ncolumns: title\ndateColumn: dueDate\nstartDate: 2024-01-01\nendDate: 2024-01-31\norderBy: id"
        )
        result = run_compiled(backend, compile_query(config))
        assert [row[0] for row in result.rows] == ["Write report", "Fix bug"]


class TestCharts:
    def test_pie_numeric(self):
        compiled = compile_query(PieChart(table="sales", category_column="region", value_column="amount"))
        assert compiled.sql == (
            'SELECT "region", SUM("amount") AS value FROM "sales" GROUP BY "region" ORDER BY value DESC'
        )

    def test_duration_rule(self):
        assert is_duration_pie(PieChart(table="Time", category_column="activity", value_column="duration"))
        assert is_duration_pie(PieChart(table="time", category_column="a", value_column="duration"))
        assert not is_duration_pie(PieChart(table="Time", category_column="a", value_column="minutes"))
        assert not is_duration_pie(
            PieChart(table="Time", category_column="a", value_column="duration", value_format="number")
        )
        assert is_duration_pie(PieChart(table="log", category_column="a", value_column="spent", value_format="duration"))

    def test_duration_pie_sums_seconds(self, backend):
        config = parse_chart("chartType: pie\ntable: Time\ncategoryColumn: activity\nvalueColumn: duration")
        result = run_compiled(backend, compile_query(config))
        assert result.rows == [["work", 7200], ["gym", 2715]]

    def test_time_series_with_category_and_dates(self):
        config = TimeSeriesChart(
            chart_type="bar",
            table="sales",
            x_column="day",
            y_columns=("amount",),
            category_column="region",
            date_column="day",
            start_date="2024-01-01",
            end_date="2024-01-01",
        )
        compiled = compile_query(config)
        assert compiled.sql == (
            'SELECT "day", "region", "amount" FROM "sales" WHERE "day" >= ? AND "day" < ? ORDER BY "day", "region"'
        )
        assert compiled.params == ["2024-01-01", "2024-01-02"]
