"""Basket state and per-store basket aggregation."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from comparador.models import BasketComparison, BasketItem, Product, ProductRange, Store, clamp_quantity
from comparador.pricebook import PriceMatrix


DEFAULT_MAX_ITEMS = 10

EnabledStores = Union[Iterable[str], Mapping[str, bool]]


class BasketFullError(ValueError):
    """Raised when adding a product to a basket at capacity."""
    pass


class Basket:
    """Ordered set of products with quantities. No duplicate product ids."""

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS):
        self.max_items = max_items
        self._items: List[BasketItem] = []

    @property
    def items(self) -> Tuple[BasketItem, ...]:
        return tuple(self._items)

    @property
    def product_ids(self) -> List[str]:
        return [item.product_id for item in self._items]

    @property
    def names(self) -> List[str]:
        return [item.name for item in self._items]

    @property
    def can_add_more(self) -> bool:
        return len(self._items) < self.max_items

    def add(self, product: Product, quantity: Any = 1) -> bool:
        """Add a product. Returns False if it is already in the basket.

        Raises:
            BasketFullError: If the basket already holds ``max_items`` products
        """
        if product.id in self:
            return False
        if not self.can_add_more:
            raise BasketFullError(f"La canasta admite como maximo {self.max_items} productos")
        self._items.append(BasketItem(product_id=product.id, quantity=quantity, name=product.name))
        logger.debug(f"Added {product.name} to basket")
        return True

    def remove(self, product_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.product_id != product_id]
        return len(self._items) != before

    def set_quantity(self, product_id: str, quantity: Any) -> Optional[int]:
        """Set a clamped quantity. Returns the stored value, or None if absent."""
        for item in self._items:
            if item.product_id == product_id:
                item.quantity = clamp_quantity(quantity)
                return item.quantity
        return None

    def clear(self):
        self._items = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[BasketItem]:
        return iter(list(self._items))

    def __contains__(self, product_id: object) -> bool:
        return any(item.product_id == product_id for item in self._items)


def _enabled_ids(enabled_stores: EnabledStores) -> List[str]:
    if isinstance(enabled_stores, Mapping):
        candidates = [store_id for store_id, enabled in enabled_stores.items() if enabled]
    else:
        candidates = list(enabled_stores or [])
    seen = set()
    ordered = []
    for store_id in candidates:
        if store_id in seen:
            continue
        seen.add(store_id)
        ordered.append(store_id)
    return ordered


class BasketAggregator:
    """Totals, best/worst store and savings for a basket.

    Pure over its three inputs: the price matrix, the basket items and the
    enabled stores (ids in display order, or an ``id -> enabled`` mapping).
    A missing price contributes 0 to a store's total; the store still gets
    a total from its other items.
    """

    def __init__(
        self,
        matrix: PriceMatrix,
        items: Iterable[BasketItem],
        enabled_stores: EnabledStores,
    ):
        self.matrix = matrix
        self.items = list(items or [])
        self.store_ids = _enabled_ids(enabled_stores)

    def compute_totals(self) -> Dict[str, float]:
        totals = {store_id: 0.0 for store_id in self.store_ids}
        for item in self.items:
            quantity = clamp_quantity(item.quantity)
            for store_id in self.store_ids:
                price = self.matrix.get_price(item.product_id, store_id) or 0.0
                totals[store_id] += price * quantity
        return totals

    def comparable_stores(self) -> List[str]:
        """Enabled stores with a known price for at least one basket item."""
        return [
            store_id
            for store_id in self.store_ids
            if any(self.matrix.get_price(item.product_id, store_id) is not None for item in self.items)
        ]

    def compare(self) -> BasketComparison:
        totals = self.compute_totals()
        comparable = self.comparable_stores()
        comparison = BasketComparison(totals=totals, comparable=comparable)
        if not comparable:
            return comparison

        best = worst = comparable[0]
        for store_id in comparable[1:]:
            if totals[store_id] < totals[best]:
                best = store_id
            if totals[store_id] > totals[worst]:
                worst = store_id

        comparison.best_store, comparison.best_total = best, totals[best]
        comparison.worst_store, comparison.worst_total = worst, totals[worst]
        comparison.savings = totals[worst] - totals[best]
        comparison.savings_percent = comparison.savings / totals[worst] if totals[worst] else 0.0
        return comparison

    def per_product_min_max(self, product_id: str) -> Optional[ProductRange]:
        prices = [
            (store_id, price)
            for store_id in self.store_ids
            for price in [self.matrix.get_price(product_id, store_id)]
            if price is not None and price > 0
        ]
        if not prices:
            return None

        low = high = prices[0]
        for entry in prices[1:]:
            if entry[1] < low[1]:
                low = entry
            if entry[1] > high[1]:
                high = entry
        return ProductRange(min_store=low[0], min_price=low[1], max_store=high[0], max_price=high[1])

    def sorted_stores(self, ascending: bool = True) -> List[Tuple[str, float]]:
        """Enabled stores ordered by total; ties keep enabled order."""
        totals = self.compute_totals()
        return sorted(totals.items(), key=lambda entry: entry[1] if ascending else -entry[1])

    def line_totals(self, store_id: str) -> List[Tuple[BasketItem, Optional[float], float]]:
        """Per-item unit price and subtotal at a single store."""
        lines = []
        for item in self.items:
            price = self.matrix.get_price(item.product_id, store_id)
            lines.append((item, price, (price or 0.0) * clamp_quantity(item.quantity)))
        return lines


def compute_totals(
    matrix: PriceMatrix,
    basket: Iterable[BasketItem],
    enabled_stores: EnabledStores,
) -> Dict[str, float]:
    return BasketAggregator(matrix, basket, enabled_stores).compute_totals()


class StoreSelection:
    """Which stores feed the comparison: several enabled ones, or a single store."""

    def __init__(self, stores: Sequence[Store] = (), default_enabled: int = 3):
        self.stores: List[Store] = []
        self.multi = True
        self.single_store = ""
        self._enabled: Dict[str, bool] = {}
        self.default_enabled = default_enabled
        self.set_stores(stores)

    def set_stores(self, stores: Sequence[Store]):
        self.stores = list(stores)
        self._enabled = {store.id: True for store in self.stores[: self.default_enabled]}
        if self.stores and self.single_store not in {store.id for store in self.stores}:
            self.single_store = self.stores[0].id

    def is_enabled(self, store_id: str) -> bool:
        return bool(self._enabled.get(store_id))

    def toggle(self, store_id: str) -> bool:
        self._enabled[store_id] = not self._enabled.get(store_id, False)
        return self._enabled[store_id]

    def set_multi(self, multi: bool):
        self.multi = multi

    def select_single(self, store_id: str):
        self.single_store = store_id

    def effective_ids(self) -> List[str]:
        if self.multi:
            return [store.id for store in self.stores if self._enabled.get(store.id)]
        return [store.id for store in self.stores if store.id == self.single_store]

    def effective_stores(self) -> List[Store]:
        enabled = set(self.effective_ids())
        return [store for store in self.stores if store.id in enabled]

    def name_for(self, store_id: str) -> str:
        for store in self.stores:
            if store.id == store_id:
                return store.name
        return store_id
