"""
Date/period placeholder substitution.

A pure string-templating pre-pass applied to raw block text before parsing.
It reads nothing but the snapshot it is given.

    @date       selected date            2024-06-13
    @startDate  period start             2024-06-10
    @endDate    period end               2024-06-16
    @periodId   period identifier        2024-W24
    @year       year of selected date    2024
    @quarter    quarter number           2
    @month      two-digit month          06
    @week       ISO week                 W24
    @day        two-digit day            13
"""

from __future__ import annotations

import re

from .periods import iso_week_id, period_id, quarter_of
from .selection import SelectionChange

_PLACEHOLDER_RE = re.compile(r"@(startDate|endDate|periodId|date|year|quarter|month|week|day)")


def placeholder_values(snapshot: SelectionChange) -> dict[str, str]:
    selected = snapshot.selected_date
    year, month, day = selected.split("-")
    return {
        "date": selected,
        "startDate": snapshot.period_start_date,
        "endDate": snapshot.period_end_date,
        "periodId": period_id(selected, snapshot.current_period),
        "year": year,
        "quarter": str(quarter_of(selected)),
        "month": month,
        "week": iso_week_id(selected).split("-")[1],
        "day": day,
    }


def replace_placeholders(source: str, snapshot: SelectionChange) -> str:
    """Substitute every placeholder token in *source* from *snapshot*."""
    values = placeholder_values(snapshot)
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], source)
