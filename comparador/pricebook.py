"""Sparse product x store price table and feed-label matching."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from comparador.models import PriceQuote, Product, Store, coerce_number, store_id_from_name


_QUANTITY_TOKEN = re.compile(r"^\d+[a-zA-Z]*$")


def capitalize_product_name(name: str) -> str:
    """Capitalize each word of a feed label, keeping sizes like ``1kg`` lower-case."""
    words = []
    for word in str(name or "").split(" "):
        if _QUANTITY_TOKEN.match(word):
            words.append(word.lower())
        else:
            words.append(word[:1].upper() + word[1:].lower())
    return " ".join(words)


def normalize_label(value: Optional[str]) -> str:
    """Normalize labels for case-insensitive, whitespace-insensitive matching."""
    if not value:
        return ""
    return " ".join(str(value).lower().split())


def match_product(catalog: Sequence[Product], label: str) -> Optional[Product]:
    """Find the catalog product a feed label refers to.

    Tries exact name equality, then the capitalized label, then a
    normalized case-insensitive comparison.
    """
    if not label:
        return None

    capitalized = capitalize_product_name(label)
    for product in catalog:
        if product.name == label or product.name == capitalized:
            return product

    normalized = normalize_label(label)
    for product in catalog:
        if normalize_label(product.name) == normalized:
            return product
    return None


def catalog_from_labels(labels: Iterable[str]) -> List[Product]:
    """Build catalog products from the canonical label list."""
    catalog = []
    for index, label in enumerate(labels):
        label = str(label or "")
        catalog.append(
            Product(
                id=f"prod_{index}",
                name=capitalize_product_name(label),
                category=label.split(" ")[0] if label else None,
            )
        )
    return catalog


def stores_from_chains(rows: Iterable[Mapping[str, Any]]) -> List[Store]:
    """Build stores from chain rows. Names normalizing to the same id collapse to the first."""
    stores: List[Store] = []
    seen = set()
    for row in rows:
        name = row.get("nombre") if isinstance(row, Mapping) else None
        if not name:
            continue
        store = Store.from_name(str(name))
        if store.id in seen:
            logger.debug(f"Chain '{name}' collides with existing store id '{store.id}'")
            continue
        seen.add(store.id)
        stores.append(store)
    return stores


def _coerce_price(price: Any) -> Optional[float]:
    value = coerce_number(price, default=None)
    if value is None or value <= 0:
        return None
    return value


class PriceMatrix:
    """Sparse mapping ``product_id -> store_id -> price``.

    Only known, strictly positive prices are stored; an absent key means
    "unknown". A zero price from the feed is treated as unknown.
    """

    def __init__(self, prices: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._prices: Dict[str, Dict[str, float]] = {}
        for product_id, row in (prices or {}).items():
            for store_id, price in (row or {}).items():
                self.set_price(product_id, store_id, price)

    def set_price(self, product_id: str, store_id: str, price: Any) -> bool:
        """Store a price. Returns False when the value was treated as unknown."""
        value = _coerce_price(price)
        if value is None:
            self.discard(product_id, store_id)
            return False
        self._prices.setdefault(product_id, {})[store_id] = value
        return True

    def get_price(self, product_id: str, store_id: str) -> Optional[float]:
        return self._prices.get(product_id, {}).get(store_id)

    def prices_for(self, product_id: str) -> Dict[str, float]:
        return dict(self._prices.get(product_id, {}))

    def discard(self, product_id: str, store_id: str):
        row = self._prices.get(product_id)
        if row is None:
            return
        row.pop(store_id, None)
        if not row:
            del self._prices[product_id]

    def reset_pairs(self, product_ids: Iterable[str], store_ids: Iterable[str]):
        """Mark every requested product/store pair as unknown."""
        store_ids = list(store_ids)
        for product_id in product_ids:
            for store_id in store_ids:
                self.discard(product_id, store_id)

    def clear(self):
        self._prices.clear()

    def product_ids(self) -> List[str]:
        return list(self._prices)

    def apply_quotes(
        self,
        quotes: Iterable[PriceQuote],
        catalog: Sequence[Product],
        product_ids: Iterable[str],
        store_ids: Iterable[str],
    ) -> Tuple[int, List[str]]:
        """Replace the requested pairs with the prices of a lookup response.

        Args:
            quotes: Rows of the price lookup response
            catalog: Catalog used to resolve feed labels to product ids
            product_ids: Products included in the request
            store_ids: Stores included in the request

        Returns:
            Tuple of (prices applied, unmatched feed labels)
        """
        self.reset_pairs(product_ids, store_ids)

        applied = 0
        unmatched: List[str] = []
        for quote in quotes:
            product = match_product(catalog, quote.product_label)
            if product is None:
                unmatched.append(quote.product_label)
                continue
            store_id = store_id_from_name(quote.store_name)
            if self.set_price(product.id, store_id, quote.final_price):
                applied += 1
                logger.debug(f"Price {product.name} @ {store_id}: {quote.final_price}")
        return applied, unmatched

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {product_id: dict(row) for product_id, row in self._prices.items()}

    def copy(self) -> "PriceMatrix":
        return PriceMatrix(self._prices)

    def __len__(self) -> int:
        return sum(len(row) for row in self._prices.values())

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._prices
