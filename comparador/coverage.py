"""Date windows and per-product coverage checks."""

from __future__ import annotations

import calendar
import re
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from comparador.models import CoverageReport, DateWindow, Series


MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")

PERIOD_MONTHS = {"6m": 6, "12m": 12, "24m": 24, "48m": 48}


def month_start(ym: str) -> str:
    return f"{ym}-01" if ym and MONTH_PATTERN.match(ym) else ""


def month_end(ym: str) -> str:
    if not ym or not MONTH_PATTERN.match(ym):
        return ""
    year, month = (int(part) for part in ym.split("-"))
    last_day = calendar.monthrange(year, month)[1]
    return f"{ym}-{last_day:02d}"


def shift_month(ym: str, months: int) -> str:
    year, month = (int(part) for part in ym.split("-"))
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def months_back_window(months: int, today: Optional[date] = None) -> Tuple[str, str]:
    """Return (start_ym, end_ym) spanning ``months`` months ending this month."""
    today = today or date.today()
    end_ym = f"{today.year:04d}-{today.month:02d}"
    return shift_month(end_ym, -(max(1, months) - 1)), end_ym


def clamp_month(value: str, min_ym: str = "", max_ym: str = "") -> str:
    if not value:
        return value
    if min_ym and value < min_ym:
        return min_ym
    if max_ym and value > max_ym:
        return max_ym
    return value


def window_from_months(start_ym: str, end_ym: str) -> DateWindow:
    """Build an inclusive day window covering whole months.

    Raises:
        InvalidDateRangeError: If start_ym is after end_ym
    """
    return DateWindow(start=month_start(start_ym), end=month_end(end_ym))


def filter_coverage(
    series_list: Sequence[Series],
    window: Optional[DateWindow],
    product_names: Optional[Sequence[str]] = None,
) -> CoverageReport:
    """Split products into those with data inside the window and those without.

    Args:
        series_list: Loaded series
        window: Inclusive day window; None accepts every point
        product_names: Products to classify, in order. Defaults to the
            series names. A name with no loaded series is excluded.

    Returns:
        CoverageReport with valid/excluded names and in-window point counts
    """
    names = list(product_names) if product_names is not None else [s.product_name for s in series_list]
    names = list(dict.fromkeys(names))

    counts: Dict[str, int] = {name: 0 for name in names}
    for serie in series_list:
        if serie.product_name not in counts:
            continue
        counts[serie.product_name] += sum(
            1 for point in serie.points if window is None or window.contains(point.date)
        )

    valid: List[str] = [name for name in names if counts[name] > 0]
    excluded: List[str] = [name for name in names if counts[name] == 0]
    return CoverageReport(valid=valid, excluded=excluded, counts=counts)
