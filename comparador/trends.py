"""Trend KPIs derived from merged series rows."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Sequence, Tuple

from comparador.models import TopMover, TrendSummary
from comparador.series import MergedRow


def _value_or_zero(row: MergedRow, name: str) -> float:
    value = row.get(name)
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _relative_change(first: float, last: float) -> float:
    return (last - first) / first if first else 0.0


def summarize_trends(rows: Sequence[MergedRow], product_names: Sequence[str]) -> TrendSummary:
    """Latest average, variation, average volatility and top mover.

    Missing cells count as 0 in the first/last averages.
    """
    if not rows or not product_names:
        return TrendSummary(0.0, 0.0, 0.0, TopMover("-", 0.0))

    first, last = rows[0], rows[-1]
    count = len(product_names)

    first_average = sum(_value_or_zero(first, name) for name in product_names) / count
    latest_average = sum(_value_or_zero(last, name) for name in product_names) / count
    variation = _relative_change(first_average, latest_average)

    spread_total = 0.0
    for name in product_names:
        values = []
        for row in rows:
            value = row.get(name)
            if isinstance(value, (int, float)) and math.isfinite(value):
                values.append(float(value))
        if values:
            spread_total += max(values) - min(values)
    average_volatility = spread_total / max(1, count)

    top = None
    for name in product_names:
        change = _relative_change(_value_or_zero(first, name), _value_or_zero(last, name))
        if top is None or change > top.change:
            top = TopMover(name, change)

    return TrendSummary(
        latest_average=latest_average,
        variation=variation,
        average_volatility=average_volatility,
        top_mover=top,
    )


def variation_bars(rows: Sequence[MergedRow], product_names: Sequence[str]) -> List[Dict[str, Any]]:
    """Percent change first-to-last per product, highest first."""
    if not rows:
        return []
    first, last = rows[0], rows[-1]
    bars = [
        {
            "producto": name,
            "change": round(_relative_change(_value_or_zero(first, name), _value_or_zero(last, name)) * 100, 2),
        }
        for name in product_names
    ]
    return sorted(bars, key=lambda bar: -bar["change"])


def last_period_share(rows: Sequence[MergedRow], product_names: Sequence[str]) -> Tuple[List[Dict[str, Any]], float]:
    """Positive values of the last row per product and their total."""
    if not rows or not product_names:
        return [], 0.0
    last = rows[-1]
    slices = [{"name": name, "value": _value_or_zero(last, name)} for name in product_names]
    slices = [entry for entry in slices if entry["value"] > 0]
    return slices, sum(entry["value"] for entry in slices)
