"""
Reshape query results for the browser: chart datasets and key/value cells.
"""

from __future__ import annotations

from typing import Any

BASE_COLORS: tuple[str, ...] = (
    "#007bff",
    "#28a745",
    "#ffc107",
    "#dc3545",
    "#6f42c1",
    "#fd7e14",
    "#20c997",
    "#e83e8c",
    "#6c757d",
    "#17a2b8",
)

# One colour per data point for these; a single colour otherwise
PER_POINT_CHART_TYPES = frozenset({"pie", "donut", "polar"})


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, int | float):
        return True
    try:
        float(str(value).strip())
    except ValueError:
        return False
    return True


def _to_float(value: Any) -> float:
    return float(value) if _is_numeric(value) else 0.0


def chart_colors(count: int, chart_type: str) -> list[str]:
    if chart_type.lower() in PER_POINT_CHART_TYPES:
        return [BASE_COLORS[i % len(BASE_COLORS)] for i in range(count)]
    return [BASE_COLORS[0]]


def adjust_colors(colors: list[str], amount: int) -> list[str]:
    """Lighten (amount > 0) or darken each ``#rrggbb`` colour, clamped to 0..255."""
    out = []
    for color in colors:
        c = color.lstrip("#")
        r, g, b = (
            max(0, min(255, int(c[i : i + 2], 16) + amount)) for i in (0, 2, 4)
        )
        out.append(f"#{r:02x}{g:02x}{b:02x}")
    return out


def pick_value_column(rows: list[dict[str, Any]], headers: list[str]) -> str:
    """First non-label column whose values are all numeric, else the second header."""
    label = headers[0] if headers else "id"
    for header in headers:
        if header == label:
            continue
        if all(_is_numeric(row.get(header)) for row in rows):
            return header
    return headers[1] if len(headers) > 1 else "value"


def build_chart_data(
    rows: list[dict[str, Any]],
    headers: list[str],
    report_name: str,
    chart_type: str,
) -> dict[str, Any]:
    """Chart.js style payload: labels, one dataset, and axis labels."""
    label_column = headers[0] if headers else "id"
    value_column = pick_value_column(rows, headers)
    values = [_to_float(row.get(value_column)) for row in rows]
    colors = chart_colors(len(values), chart_type or "bar")
    return {
        "labels": [row.get(label_column) for row in rows],
        "datasets": [
            {
                "label": report_name,
                "data": values,
                "backgroundColor": colors,
                "borderColor": adjust_colors(colors, -20),
                "borderWidth": 2,
            }
        ],
        "axis_labels": {"x_axis": label_column, "y_axis": value_column},
    }


def format_cells(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """``[{"cells": [{"key": k, "value": "v"}, ...]}, ...]``; None becomes ``""``."""
    return [
        {
            "cells": [
                {"key": key, "value": "" if value is None else str(value)}
                for key, value in row.items()
            ]
        }
        for row in rows
    ]
