"""
Tests for navigation period arithmetic.
"""

from datetime import date, timedelta

import pytest

from notedb.errors import ConfigError
from notedb.periods import (
    Period,
    PeriodRange,
    adjacent_period_date,
    calculate_period_range,
    format_period_for_display,
    iso_week_id,
    period_id,
)


class TestPeriodRange:
    @pytest.mark.parametrize(
        "period, expected",
        [
            (Period.DAY, PeriodRange("2024-06-13", "2024-06-13")),
            (Period.WEEK, PeriodRange("2024-06-10", "2024-06-16")),
            (Period.MONTH, PeriodRange("2024-06-01", "2024-06-30")),
            (Period.QUARTER, PeriodRange("2024-04-01", "2024-06-30")),
            (Period.YEAR, PeriodRange("2024-01-01", "2024-12-31")),
        ],
    )
    def test_ranges(self, period, expected):
        assert calculate_period_range("2024-06-13", period) == expected

    def test_week_starts_monday_on_sunday(self):
        assert calculate_period_range("2024-06-16", "week") == PeriodRange("2024-06-10", "2024-06-16")

    def test_leap_february(self):
        assert calculate_period_range("2024-02-10", "month").end == "2024-02-29"
        assert calculate_period_range("2023-02-10", "month").end == "2023-02-28"

    def test_accepts_date_objects(self):
        assert calculate_period_range(date(2024, 11, 5), Period.QUARTER) == PeriodRange("2024-10-01", "2024-12-31")

    def test_rejects_bad_date(self):
        with pytest.raises(ConfigError):
            calculate_period_range("2024-13-01", "day")

    def test_rejects_unknown_period(self):
        with pytest.raises(ValueError):
            calculate_period_range("2024-06-13", "fortnight")


class TestNavigation:
    @pytest.mark.parametrize(
        "ref, period, direction, expected",
        [
            ("2024-06-13", "day", "next", "2024-06-14"),
            ("2024-03-01", "day", "prev", "2024-02-29"),
            ("2024-06-13", "week", "prev", "2024-06-06"),
            ("2024-01-31", "month", "next", "2024-02-01"),
            ("2024-01-15", "month", "prev", "2023-12-01"),
            ("2024-11-20", "quarter", "next", "2025-01-01"),
            ("2024-02-20", "quarter", "prev", "2023-10-01"),
            ("2024-06-13", "year", "next", "2025-01-01"),
            ("2024-12-31", "quarter", "prev", "2024-07-01"),
            ("2024-05-31", "quarter", "next", "2024-07-01"),
        ],
    )
    def test_adjacent(self, ref, period, direction, expected):
        assert adjacent_period_date(ref, period, direction) == expected

    def test_bad_direction(self):
        with pytest.raises(ValueError):
            adjacent_period_date("2024-06-13", "day", "sideways")

    @pytest.mark.parametrize("period", list(Period))
    def test_no_period_after_last_date(self, period):
        with pytest.raises(ConfigError, match="No .* next of 9999-12-31"):
            adjacent_period_date(date.max, period, "next")

    @pytest.mark.parametrize("period", list(Period))
    def test_no_period_before_first_date(self, period):
        with pytest.raises(ConfigError):
            adjacent_period_date(date.min, period, "prev")

    def test_week_into_short_last_week(self):
        # the final week of the calendar stops at 9999-12-31
        landed = adjacent_period_date(date.max - timedelta(days=7), "week", "next")
        assert calculate_period_range(landed, "week") == calculate_period_range(date.max, "week")

    def test_last_week_range_is_clamped(self):
        rng = calculate_period_range(date.max, "week")
        assert rng.end == "9999-12-31"
        assert rng.start <= "9999-12-31"


class TestIdentifiers:
    @pytest.mark.parametrize(
        "period, expected",
        [("day", "2024-06-13"), ("week", "2024-W24"), ("month", "2024-06"), ("quarter", "2024-Q2"), ("year", "2024")],
    )
    def test_period_id(self, period, expected):
        assert period_id("2024-06-13", period) == expected

    def test_iso_week_uses_iso_year(self):
        assert iso_week_id("2024-12-30") == "2025-W01"
        assert iso_week_id("2021-01-03") == "2020-W53"

    @pytest.mark.parametrize(
        "period, expected",
        [
            ("day", "Thu, Jun 13, 2024"),
            ("week", "Week 24: Jun 10 - Jun 16, 2024"),
            ("month", "June 2024"),
            ("quarter", "Q2 2024"),
            ("year", "2024"),
        ],
    )
    def test_display(self, period, expected):
        assert format_period_for_display("2024-06-13", period) == expected
