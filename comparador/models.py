"""Data models shared by the basket comparison and series pipelines."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


MIN_QUANTITY = 1
MAX_QUANTITY = 999

_WHITESPACE = re.compile(r"\s+")


class InvalidDateRangeError(ValueError):
    """Raised when a date window starts after it ends."""
    pass


def store_id_from_name(name: str) -> str:
    """Derive a store id from a chain name (lower-cased, whitespace -> '_')."""
    return _WHITESPACE.sub("_", str(name or "").lower())


def clamp_quantity(value: Any) -> int:
    """Clamp a basket quantity to an integer in [1, 999].

    Non-numeric, zero and NaN values fall back to 1; fractions are truncated.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_QUANTITY
    if math.isnan(number) or number == 0:
        return MIN_QUANTITY
    if math.isinf(number):
        return MAX_QUANTITY if number > 0 else MIN_QUANTITY
    return max(MIN_QUANTITY, min(MAX_QUANTITY, int(number)))


def coerce_number(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Coerce a feed value to a finite float, or ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    category: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "category": self.category}


@dataclass(frozen=True)
class Store:
    id: str
    name: str

    @classmethod
    def from_name(cls, name: str) -> "Store":
        return cls(id=store_id_from_name(name), name=name)


@dataclass
class BasketItem:
    """A basket line. Quantity is clamped on creation."""

    product_id: str
    quantity: int = 1
    name: str = ""

    def __post_init__(self):
        self.quantity = clamp_quantity(self.quantity)


@dataclass(frozen=True)
class SeriesPoint:
    date: str
    value: float


@dataclass
class Series:
    """Historical points for one product and unit. Points may be sparse."""

    product_id: str
    product_name: str
    unit: str = ""
    points: List[SeriesPoint] = field(default_factory=list)


@dataclass(frozen=True)
class PriceQuote:
    """One row of a price lookup response."""

    product_label: str
    store_name: str
    final_price: Optional[float]
    normal_price: Optional[float] = None
    offer_price: Optional[float] = None
    promo: Optional[str] = None
    url: Optional[str] = None

    @property
    def store_id(self) -> str:
        return store_id_from_name(self.store_name)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "PriceQuote":
        def _optional(key: str) -> Optional[float]:
            value = row.get(key)
            return None if value is None else coerce_number(value, default=None)

        return cls(
            product_label=str(row.get("etiqueta_producto") or ""),
            store_name=str(row.get("supermercado") or ""),
            final_price=_optional("precio_final"),
            normal_price=_optional("precio_normal"),
            offer_price=_optional("precio_oferta"),
            promo=row.get("promo"),
            url=row.get("url"),
        )


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar-day window (``YYYY-MM-DD`` strings)."""

    start: str
    end: str

    def __post_init__(self):
        if self.start and self.end and self.start > self.end:
            raise InvalidDateRangeError(
                f"La fecha inicial ({self.start}) no puede ser mayor a la final ({self.end})"
            )

    def contains(self, day: str) -> bool:
        day = str(day)[:10]
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


@dataclass
class OptionList:
    """Option list returned by the unit/region/market endpoints."""

    options: List[Dict[str, Any]]
    available_from: Optional[str] = None
    available_to: Optional[str] = None

    @property
    def labels(self) -> List[str]:
        return [str(option.get("nombre")) for option in self.options if option.get("nombre")]


@dataclass
class ProductPage:
    items: List[Product]
    count: int


@dataclass(frozen=True)
class ProductRange:
    """Cheapest and most expensive enabled store for one product."""

    min_store: str
    min_price: float
    max_store: str
    max_price: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "min_store": self.min_store,
            "min_price": self.min_price,
            "max_store": self.max_store,
            "max_price": self.max_price,
        }


@dataclass
class BasketComparison:
    totals: Dict[str, float]
    comparable: List[str]
    best_store: Optional[str] = None
    best_total: Optional[float] = None
    worst_store: Optional[str] = None
    worst_total: Optional[float] = None
    savings: float = 0.0
    savings_percent: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "totals": dict(self.totals),
            "comparable": list(self.comparable),
            "best": {"store": self.best_store, "total": self.best_total},
            "worst": {"store": self.worst_store, "total": self.worst_total},
            "savings": self.savings,
            "savings_percent": self.savings_percent,
        }


@dataclass(frozen=True)
class TopMover:
    product: str
    change: float


@dataclass
class TrendSummary:
    latest_average: float
    variation: float
    average_volatility: float
    top_mover: TopMover

    def as_dict(self) -> Dict[str, Any]:
        return {
            "latest_average": self.latest_average,
            "variation": self.variation,
            "average_volatility": self.average_volatility,
            "top_mover": {"product": self.top_mover.product, "change": self.top_mover.change},
        }


@dataclass
class SeriesSummary:
    """Headline numbers for a single product series."""

    actual: Optional[float] = None
    promedio: Optional[float] = None
    maximo: Optional[float] = None
    variacion: Optional[float] = None


@dataclass
class CoverageReport:
    valid: List[str]
    excluded: List[str]
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def notice(self) -> Optional[str]:
        if not self.excluded:
            return None
        names = ", ".join(self.excluded)
        return f"Sin datos en el periodo seleccionado para: {names}"
