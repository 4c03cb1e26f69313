"""Merging and indexing of per-product price series.

Series points arrive sparse and irregular. They are bucketed into calendar
periods (``YYYY-MM`` or ``YYYY``), averaged per period, and laid out as one
row per period with one column per product. A cell is only present when the
product has data in that period.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from comparador.models import Series, SeriesPoint, SeriesSummary


PERIOD_COLUMN = "period"

GRANULARITIES = {
    "month": re.compile(r"^\d{4}-\d{2}"),
    "year": re.compile(r"^\d{4}"),
}
_PERIOD_WIDTH = {"month": 7, "year": 4}

MergedRow = Dict[str, Any]


def period_key(day: Any, granularity: str = "month") -> Optional[str]:
    """Truncate a calendar day to its period key, or None if it is malformed."""
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unsupported granularity: {granularity}")
    text = str(day or "")
    if not GRANULARITIES[granularity].match(text):
        return None
    return text[: _PERIOD_WIDTH[granularity]]


def merge_series(
    series_list: Sequence[Series],
    included_names: Sequence[str],
    granularity: str = "month",
) -> List[MergedRow]:
    """Merge several product series into rows keyed by period.

    Args:
        series_list: Series to merge
        included_names: Product names to keep, in column order
        granularity: "month" or "year"

    Returns:
        Rows sorted by period; points sharing a period are averaged
    """
    included = list(dict.fromkeys(included_names))
    records = []
    for serie in series_list:
        if serie.product_name not in included:
            continue
        for point in serie.points:
            key = period_key(point.date, granularity)
            if key is None:
                logger.debug(f"Skipping point with malformed date {point.date!r} for {serie.product_name}")
                continue
            records.append({PERIOD_COLUMN: key, "product": serie.product_name, "value": point.value})

    if not records:
        return []

    df = pd.DataFrame(records)
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    table = (
        df.groupby([PERIOD_COLUMN, "product"])["value"]
        .mean()
        .unstack("product")
        .sort_index()
    )

    rows: List[MergedRow] = []
    for period, values in table.iterrows():
        row: MergedRow = {PERIOD_COLUMN: str(period)}
        for name in included:
            if name in values.index and pd.notna(values[name]):
                row[name] = float(values[name])
        rows.append(row)
    return rows


def _cell(row: MergedRow, name: str) -> Optional[float]:
    value = row.get(name)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def to_index_series(rows: Sequence[MergedRow], product_names: Sequence[str]) -> List[MergedRow]:
    """Rebase merged rows so each product's first value is 100.

    The base of a product is its value in the first input row, or the current
    row's own value when the first row lacks it. A zero base yields 0. Absent
    cells stay absent. Order-dependent: merge first, then index.
    """
    if not rows:
        return []

    base_row = rows[0]
    indexed_rows = []
    for row in rows:
        indexed: MergedRow = {PERIOD_COLUMN: row.get(PERIOD_COLUMN)}
        for name in product_names:
            value = _cell(row, name)
            if value is None:
                continue
            base = _cell(base_row, name)
            if base is None:
                base = value
            indexed[name] = value / base * 100 if base else 0.0
        indexed_rows.append(indexed)
    return indexed_rows


def bucket_points(points: Sequence[SeriesPoint], granularity: str = "month") -> List[Tuple[str, float]]:
    """Average a single series per period, as chart points.

    Month buckets are dated ``YYYY-MM-01`` and year buckets ``YYYY-01-01``.
    """
    if not points:
        return []
    serie = Series(product_id="", product_name="value", points=list(points))
    suffix = "-01" if granularity == "month" else "-01-01"
    return [
        (row[PERIOD_COLUMN] + suffix, row["value"])
        for row in merge_series([serie], ["value"], granularity)
        if "value" in row
    ]


def summarize_series(points: Sequence[SeriesPoint]) -> SeriesSummary:
    """Current value, mean, max and first-to-last percent change of one series."""
    values = [point.value for point in sorted(points, key=lambda p: str(p.date))]
    if not values:
        return SeriesSummary()

    actual = values[-1]
    variacion = 0.0
    if len(values) > 1:
        variacion = (actual - values[0]) / max(1e-9, values[0]) * 100
    return SeriesSummary(
        actual=actual,
        promedio=sum(values) / len(values),
        maximo=max(values),
        variacion=variacion,
    )
