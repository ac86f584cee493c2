"""
Navigation period arithmetic.

Pure functions of (date, period). All arithmetic uses naive calendar dates
(``datetime.date``), so there is no timezone or DST drift: a day is always
exactly one calendar day.

Periods:
- day: the date itself
- week: ISO week, Monday through Sunday
- month: first to last calendar day
- quarter: Jan/Apr/Jul/Oct-aligned three-month block
- year: Jan 1 through Dec 31
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from .compiler import parse_iso_date
from .errors import ConfigError


class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


@dataclass(frozen=True)
class PeriodRange:
    start: str
    end: str


def _quarter_start_month(month: int) -> int:
    return ((month - 1) // 3) * 3 + 1


def _last_day(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _as_date(value: str | date) -> date:
    return value if isinstance(value, date) else parse_iso_date(value)


def calculate_period_range(ref: str | date, period: Period | str) -> PeriodRange:
    """Start and end (``YYYY-MM-DD``) of the *period* containing *ref*."""
    d = _as_date(ref)
    period = Period(period)

    if period is Period.DAY:
        start = end = d
    elif period is Period.WEEK:
        start = d - timedelta(days=d.weekday())
        # the week holding date.max is cut short at date.max
        end = start + timedelta(days=min(6, (date.max - start).days))
    elif period is Period.MONTH:
        start = d.replace(day=1)
        end = _last_day(d.year, d.month)
    elif period is Period.QUARTER:
        first = _quarter_start_month(d.month)
        start = date(d.year, first, 1)
        end = _last_day(d.year, first + 2)
    else:
        start = date(d.year, 1, 1)
        end = date(d.year, 12, 31)

    return PeriodRange(start.isoformat(), end.isoformat())


def adjacent_period_date(ref: str | date, period: Period | str, direction: str) -> str:
    """The date the navigator moves to for ``direction`` in {"next", "prev"}.

    Day and week step by 1 and 7 days. Month, quarter and year land on the
    first day of the adjacent block so short months never skip. Stepping out
    of the first or last block ``datetime.date`` can represent raises
    ConfigError.
    """
    if direction not in ("next", "prev"):
        raise ValueError(f"direction must be 'next' or 'prev', not {direction!r}")
    d = _as_date(ref)
    period = Period(period)
    step = 1 if direction == "next" else -1

    try:
        if period is Period.DAY:
            return (d + timedelta(days=step)).isoformat()
        if period is Period.WEEK:
            monday = d - timedelta(days=d.weekday()) + timedelta(days=7 * step)
            # same weekday, cut to the short week that ends at date.max
            return (monday + timedelta(days=min(d.weekday(), (date.max - monday).days))).isoformat()
        if period is Period.YEAR:
            return date(d.year + step, 1, 1).isoformat()

        if period is Period.MONTH:
            index = d.year * 12 + (d.month - 1) + step
        else:
            index = d.year * 12 + (_quarter_start_month(d.month) - 1) + 3 * step
        return date(index // 12, index % 12 + 1, 1).isoformat()
    except (OverflowError, ValueError):
        raise ConfigError(f"No {period.value} {direction} of {d.isoformat()}") from None


# ============================================================
# PERIOD IDENTIFIERS
# ============================================================


def iso_week_id(ref: str | date) -> str:
    """ISO week identifier ``YYYY-Www`` (the ISO year, which may differ near New Year)."""
    iso_year, week, _ = _as_date(ref).isocalendar()
    return f"{iso_year}-W{week:02d}"


def quarter_of(ref: str | date) -> int:
    return (_as_date(ref).month - 1) // 3 + 1


def period_id(ref: str | date, period: Period | str) -> str:
    """``YYYY-MM-DD``, ``YYYY-Www``, ``YYYY-MM``, ``YYYY-Qn`` or ``YYYY``."""
    d = _as_date(ref)
    period = Period(period)
    if period is Period.DAY:
        return d.isoformat()
    if period is Period.WEEK:
        return iso_week_id(d)
    if period is Period.MONTH:
        return f"{d.year}-{d.month:02d}"
    if period is Period.QUARTER:
        return f"{d.year}-Q{quarter_of(d)}"
    return str(d.year)


def format_period_for_display(ref: str | date, period: Period | str) -> str:
    """Navigator header text, e.g. ``Week 24: Jun 10 - Jun 16, 2024``."""
    d = _as_date(ref)
    period = Period(period)
    rng = calculate_period_range(d, period)
    start = parse_iso_date(rng.start)
    end = parse_iso_date(rng.end)

    if period is Period.DAY:
        return f"{d.strftime('%a')}, {d.strftime('%b')} {d.day}, {d.year}"
    if period is Period.WEEK:
        week = d.isocalendar()[1]
        return (
            f"Week {week}: {start.strftime('%b')} {start.day} - "
            f"{end.strftime('%b')} {end.day}, {start.year}"
        )
    if period is Period.MONTH:
        return f"{d.strftime('%B')} {d.year}"
    if period is Period.QUARTER:
        return f"Q{quarter_of(d)} {d.year}"
    return str(d.year)
