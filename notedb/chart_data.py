"""
Chart post-processing.

Turns query rows into a chart-library-agnostic structure:

    {"type": ..., "labels": [...], "datasets": [...], "options": {...}}

Grouping and series splitting for line/bar charts happen here, not in SQL.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .backends import ResultSet
from .blocks import ChartConfig, PieChart
from .compiler import is_duration_pie

_PALETTE = (
    (255, 99, 132),  # red
    (54, 162, 235),  # blue
    (75, 192, 192),  # green
    (255, 206, 86),  # yellow
    (153, 102, 255),  # purple
    (255, 159, 64),  # orange
)


@dataclass
class ChartSpec:
    type: str
    labels: list[Any]
    datasets: list[dict[str, Any]]
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def color_for_index(index: int, alpha: float = 1) -> str:
    r, g, b = _PALETTE[index % len(_PALETTE)]
    return f"rgba({r}, {g}, {b}, {alpha})"


def format_seconds(total_seconds: float | int | None) -> str:
    """Elapsed seconds as ``HH:MM:SS``."""
    total = int(total_seconds or 0)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _pie(result: ResultSet, config: PieChart) -> tuple[list, list]:
    duration = is_duration_pie(config)
    labels = [f"{row[0]} | {format_seconds(row[1])}" if duration else row[0] for row in result.rows]
    datasets = [
        {
            "label": config.value_column,
            "data": [row[1] for row in result.rows],
            "backgroundColor": [color_for_index(i, 0.6) for i in range(len(result.rows))],
        }
    ]
    return labels, datasets


def _series_style(chart_type: str, index: int) -> dict[str, Any]:
    if chart_type == "bar":
        return {
            "backgroundColor": color_for_index(index, 0.6),
            "hoverBackgroundColor": color_for_index(index, 0.8),
            "borderColor": color_for_index(index),
            "borderWidth": 1,
        }
    return {
        "borderColor": color_for_index(index),
        "backgroundColor": color_for_index(index, 0.2),
        "fill": False,
        "tension": 0.1,
    }


def _grouped(result: ResultSet, config) -> tuple[list, list]:
    """Rows are (x, category, y...): one dataset per category, first y column."""
    groups: dict[str, dict[str, list]] = {}
    for row in result.rows:
        group = groups.setdefault(str(row[1]), {"x": [], "y": []})
        group["x"].append(row[0])
        group["y"].append(row[2])

    labels: list[Any] = []
    for group in groups.values():
        for x in group["x"]:
            if x not in labels:
                labels.append(x)

    datasets = []
    for index, (name, group) in enumerate(groups.items()):
        by_x = dict(zip(group["x"], group["y"], strict=True))
        datasets.append(
            {
                "label": name,
                "data": [by_x.get(x) for x in labels],
                **_series_style(config.chart_type, index),
            }
        )
    return labels, datasets


def _ungrouped(result: ResultSet, config) -> tuple[list, list]:
    """Rows are (x, y1, y2, ...): one dataset per y column."""
    labels = [row[0] for row in result.rows]
    datasets = [
        {
            "label": column,
            "data": [row[index + 1] for row in result.rows],
            **_series_style(config.chart_type, index),
        }
        for index, column in enumerate(config.y_columns)
    ]
    return labels, datasets


def process_chart_data(result: ResultSet, config: ChartConfig) -> ChartSpec:
    if isinstance(config, PieChart):
        labels, datasets = _pie(result, config)
    elif config.category_column:
        labels, datasets = _grouped(result, config)
    else:
        labels, datasets = _ungrouped(result, config)
    return ChartSpec(config.chart_type, labels, datasets, dict(config.chart_options))
