"""Session pipelines: basket comparison, series dashboard, product detail, catalog search.

Each session owns the state of one view and recomputes its aggregates with
plain function calls over that state. Data comes from a data source with the
``PreciosApiClient`` interface. Every fetch takes a generation token and only
commits when the token is still current.
"""

from __future__ import annotations

import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from comparador.api_client import TransportError
from comparador.basket import Basket, BasketAggregator, StoreSelection
from comparador.config_loader import get_comparison_config, get_dashboard_config
from comparador.coverage import (
    PERIOD_MONTHS,
    clamp_month,
    filter_coverage,
    months_back_window,
    window_from_months,
)
from comparador.models import (
    BasketComparison,
    CoverageReport,
    DateWindow,
    InvalidDateRangeError,
    OptionList,
    Product,
    ProductRange,
    Series,
    SeriesPoint,
    SeriesSummary,
    TrendSummary,
)
from comparador.pricebook import PriceMatrix, catalog_from_labels, match_product
from comparador.ranking import TIER_NONE, RankClassifier
from comparador.scheduling import Debouncer, RequestGeneration
from comparador.series import MergedRow, bucket_points, merge_series, summarize_series, to_index_series
from comparador.trends import last_period_share, summarize_trends, variation_bars


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComparisonSession:
    """Basket price comparison across retail chains."""

    def __init__(self, client, config: Optional[Dict[str, Any]] = None):
        cfg = get_comparison_config(config)
        self.client = client
        self.classifier = RankClassifier(
            best_threshold=float(cfg["tiers"]["best"]),
            fair_threshold=float(cfg["tiers"]["fair"]),
        )
        self.search_limit = int(cfg["search_limit"])

        self.catalog: List[Product] = []
        self.stores = StoreSelection(default_enabled=int(cfg["default_enabled_stores"]))
        self.basket = Basket(max_items=int(cfg["max_basket_items"]))
        self.matrix = PriceMatrix()

        self.error: Optional[str] = None
        self.loading = False
        self.updated_at: Optional[datetime] = None
        self.unmatched_labels: List[str] = []

        self._generation = RequestGeneration()
        self._lock = threading.RLock()
        self._settle = Debouncer(float(cfg["settle_ms"]) / 1000.0, self.request_prices)

    # -- loading -------------------------------------------------------

    def load(self) -> bool:
        """Load chains and the product catalog."""
        try:
            stores = self.client.list_chains()
        except TransportError as exc:
            self.stores.set_stores([])
            self.error = f"Error cargando supermercados: {exc}"
            return False
        self.stores.set_stores(stores)
        logger.info(f"Loaded {len(stores)} chains")

        try:
            labels = self.client.list_labels()
        except TransportError as exc:
            self.catalog = []
            self.matrix.clear()
            self.error = f"Error cargando productos: {exc}"
            return False

        self.catalog = catalog_from_labels(labels)
        self.matrix.clear()
        self.error = None
        self.updated_at = _utcnow()
        logger.info(f"Loaded {len(self.catalog)} catalog products")
        return True

    def find_product(self, name_or_id: str) -> Optional[Product]:
        for product in self.catalog:
            if product.id == name_or_id:
                return product
        return match_product(self.catalog, name_or_id)

    def search(self, query: str = "", limit: Optional[int] = None) -> List[Product]:
        """Catalog products not yet in the basket matching the query."""
        limit = self.search_limit if limit is None else limit
        candidates = [product for product in self.catalog if product.id not in self.basket]
        needle = query.strip().lower()
        if needle:
            candidates = [
                product
                for product in candidates
                if needle in product.name.lower() or needle in product.id
            ]
        return candidates[:limit]

    # -- basket / store selection --------------------------------------

    def add_product(self, product: Product, quantity: Any = 1, schedule: bool = True) -> bool:
        added = self.basket.add(product, quantity)
        if added:
            self._selection_changed(schedule)
        return added

    def remove_product(self, product_id: str, schedule: bool = True) -> bool:
        removed = self.basket.remove(product_id)
        if removed:
            self._selection_changed(schedule)
        return removed

    def set_quantity(self, product_id: str, quantity: Any) -> Optional[int]:
        # Prices do not depend on quantity; totals are recomputed on read.
        return self.basket.set_quantity(product_id, quantity)

    def clear_basket(self):
        self.basket.clear()
        self._selection_changed(schedule=False)

    def toggle_store(self, store_id: str, schedule: bool = True) -> bool:
        enabled = self.stores.toggle(store_id)
        self._selection_changed(schedule)
        return enabled

    def set_multi(self, multi: bool, schedule: bool = True):
        self.stores.set_multi(multi)
        self._selection_changed(schedule)

    def select_single(self, store_id: str, schedule: bool = True):
        self.stores.select_single(store_id)
        self._selection_changed(schedule)

    def _selection_changed(self, schedule: bool):
        with self._lock:
            self.matrix.clear()
            self._generation.invalidate()

        if self.basket and self.stores.effective_ids():
            if schedule:
                self._settle()
        else:
            self._settle.cancel()
            self.loading = False

    # -- price lookup --------------------------------------------------

    def request_prices(self) -> bool:
        """Look up prices for the current basket and enabled stores.

        Returns:
            True if a response was committed into the price matrix
        """
        with self._lock:
            token = self._generation.next()
            product_ids = self.basket.product_ids
            product_names = self.basket.names
            stores = self.stores.effective_stores()
        if not product_names or not stores:
            logger.info("No products or stores to look up")
            return False

        self.loading = True
        logger.info(f"Looking up prices: {len(product_names)} products x {len(stores)} stores")

        try:
            quotes = self.client.compare_prices(product_names, [store.name for store in stores])
        except TransportError as exc:
            if self._generation.is_current(token):
                self.error = str(exc)
                self.loading = False
            return False

        with self._lock:
            if not self._generation.is_current(token):
                logger.warning(f"Discarding stale price response (generation {token})")
                return False
            applied, unmatched = self.matrix.apply_quotes(
                quotes, self.catalog, product_ids, [store.id for store in stores]
            )
            self.unmatched_labels = unmatched
            self.updated_at = _utcnow()
            self.error = None
            self.loading = False

        for label in unmatched:
            logger.warning(f"Feed label not found in catalog: {label}")
        logger.info(f"Applied {applied} prices")
        return True

    def flush(self) -> bool:
        """Run a pending settle-delayed lookup immediately."""
        return self._settle.flush()

    # -- derived views -------------------------------------------------

    def aggregator(self) -> BasketAggregator:
        return BasketAggregator(self.matrix, self.basket.items, self.stores.effective_ids())

    def comparison(self) -> BasketComparison:
        return self.aggregator().compare()

    def tiers(self, comparison: Optional[BasketComparison] = None) -> Dict[str, str]:
        comparison = comparison or self.comparison()
        comparable = set(comparison.comparable)
        return {
            store_id: (
                self.classifier.classify(total, comparison.best_total, comparison.worst_total)
                if store_id in comparable
                else TIER_NONE
            )
            for store_id, total in comparison.totals.items()
        }

    def product_ranges(self) -> Dict[str, Optional[ProductRange]]:
        aggregator = self.aggregator()
        return {item.product_id: aggregator.per_product_min_max(item.product_id) for item in self.basket}

    def ranking(self, ascending: bool = True) -> List[Dict[str, Any]]:
        comparison = self.comparison()
        tiers = self.tiers(comparison)
        comparable = set(comparison.comparable)
        return [
            {
                "store_id": store_id,
                "store": self.stores.name_for(store_id),
                "total": total,
                "tier": tiers[store_id],
                "diff_vs_best": (
                    total - comparison.best_total
                    if store_id in comparable and comparison.best_total is not None
                    else None
                ),
            }
            for store_id, total in self.aggregator().sorted_stores(ascending)
        ]


@dataclass
class DashboardView:
    coverage: CoverageReport
    rows: List[MergedRow]
    chart_rows: List[MergedRow]
    summary: TrendSummary
    bars: List[Dict[str, Any]]
    share: List[Dict[str, Any]]
    share_total: float
    validation_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def notice(self) -> Optional[str]:
        return self.coverage.notice


class DashboardSession:
    """Multi-product price series comparison over a month window."""

    def __init__(self, client, config: Optional[Dict[str, Any]] = None, today: Optional[date] = None):
        cfg = get_dashboard_config(config)
        self.client = client
        self.dataset: str = cfg["dataset"]
        self.granularity: str = cfg["granularity"]
        self.max_products = int(cfg["max_products"])
        self.index_mode = False

        self.categories: List[Dict[str, Any]] = []
        self.products: List[Product] = []
        self.selected: List[str] = []
        self.series: List[Series] = []

        self.start_ym = ""
        self.end_ym = ""
        self.window: Optional[DateWindow] = None
        self.error: Optional[str] = None
        self.validation_error: Optional[str] = None
        self.loading = False

        self._generation = RequestGeneration()
        self.set_period(cfg["default_period"], today=today)

    def set_period(self, period: str, today: Optional[date] = None) -> bool:
        if period not in PERIOD_MONTHS:
            raise ValueError(f"Unsupported period: {period}")
        start_ym, end_ym = months_back_window(PERIOD_MONTHS[period], today)
        return self.set_months(start_ym, end_ym)

    def set_months(self, start_ym: str, end_ym: str) -> bool:
        """Set the month window. An inverted range blocks aggregation."""
        self.start_ym, self.end_ym = start_ym, end_ym
        try:
            self.window = window_from_months(start_ym, end_ym)
        except InvalidDateRangeError as exc:
            self.window = None
            self.validation_error = str(exc)
            self.series = []
            self._generation.invalidate()
            return False
        self.validation_error = None
        self._generation.invalidate()
        return True

    def set_dataset(self, dataset: str):
        self.dataset = dataset
        self.categories = []
        self.products = []
        self.selected = []
        self.series = []
        self._generation.invalidate()

    def load_categories(self) -> bool:
        try:
            self.categories = self.client.list_categories(self.dataset)
        except TransportError as exc:
            self.categories = []
            self.error = f"Error cargando categorias: {exc}"
            return False
        return True

    def load_products(self, category_id: Optional[str] = None) -> bool:
        """Load the products of a category; resets the selection."""
        self.products = []
        self.selected = []
        self.series = []
        self.error = None
        token = self._generation.next()
        try:
            page = self.client.list_products(
                dataset=self.dataset,
                category_id=category_id,
                ordering="nombre",
                page_size=500,
            )
        except TransportError as exc:
            if self._generation.is_current(token):
                self.error = str(exc)
            return False
        if not self._generation.is_current(token):
            logger.warning("Discarding stale product list response")
            return False
        self.products = page.items
        return True

    def toggle_product(self, name: str) -> bool:
        """Toggle a product in the selection. Returns whether it is now selected."""
        if name in self.selected:
            self.selected = [selected for selected in self.selected if selected != name]
            self._generation.invalidate()
            return False
        if len(self.selected) >= self.max_products:
            return False
        self.selected = self.selected + [name]
        self._generation.invalidate()
        self.error = None
        return True

    def _fetch_series(self, name: str, product_id: str) -> Series:
        units = self.client.product_units(product_id, dataset=self.dataset)
        unit = units.labels[0] if units.labels else ""
        if not unit:
            return Series(product_id=product_id, product_name=name)
        points = self.client.product_series(
            product_id,
            unit,
            dataset=self.dataset,
            desde=self.window.start if self.window else None,
            hasta=self.window.end if self.window else None,
        )
        return Series(product_id=product_id, product_name=name, unit=unit, points=points)

    def load_series(self) -> bool:
        """Fetch the series of every selected product.

        Returns:
            True if the results were committed
        """
        if self.validation_error:
            return False
        if not self.selected:
            self.series = []
            self.error = None
            self.loading = False
            return True

        name_to_id = {product.name: product.id for product in self.products}
        wanted = [(name, name_to_id[name]) for name in self.selected if name in name_to_id]

        token = self._generation.next()
        self.loading = True
        self.series = []
        self.error = None
        try:
            with ThreadPoolExecutor(max_workers=max(1, len(wanted))) as pool:
                results = list(pool.map(lambda pair: self._fetch_series(*pair), wanted))
        except TransportError as exc:
            if self._generation.is_current(token):
                self.error = str(exc) or "No se pudieron cargar las series"
                self.loading = False
            return False

        if not self._generation.is_current(token):
            logger.warning(f"Discarding stale series response (generation {token})")
            return False
        self.series = results
        self.loading = False
        logger.info(f"Loaded {len(results)} series")
        return True

    def view(self) -> DashboardView:
        if self.validation_error:
            coverage = CoverageReport(valid=[], excluded=[])
            return DashboardView(
                coverage=coverage,
                rows=[],
                chart_rows=[],
                summary=summarize_trends([], []),
                bars=[],
                share=[],
                share_total=0.0,
                validation_error=self.validation_error,
                error=self.error,
            )

        coverage = filter_coverage(self.series, self.window, self.selected)
        rows = merge_series(self.series, coverage.valid, self.granularity)
        chart_rows = to_index_series(rows, coverage.valid) if self.index_mode else rows
        share, share_total = last_period_share(chart_rows, coverage.valid)
        return DashboardView(
            coverage=coverage,
            rows=rows,
            chart_rows=chart_rows,
            summary=summarize_trends(rows, coverage.valid),
            bars=variation_bars(rows, coverage.valid),
            share=share,
            share_total=share_total,
            error=self.error,
        )


def _to_ym(value: Optional[str]) -> str:
    return str(value)[:7] if value else ""


class ProductDetailSession:
    """Single-product series with unit, region/market and month window."""

    def __init__(self, client, product: Product, dataset: str = "consumidor", granularity: str = "month"):
        self.client = client
        self.product = product
        self.dataset = dataset
        self.granularity = granularity

        self.units: List[str] = []
        self.unit = ""
        self.locations: List[Dict[str, Any]] = []
        self.location_id: Optional[str] = None
        self.available_from: Optional[str] = None
        self.available_to: Optional[str] = None
        self.start_ym = ""
        self.end_ym = ""

        self.points: List[SeriesPoint] = []
        self.error: Optional[str] = None
        self.validation_error: Optional[str] = None
        self._generation = RequestGeneration()

    def _update_availability(self, options: OptionList):
        if options.available_from:
            self.available_from = options.available_from
        if options.available_to:
            self.available_to = options.available_to

    @property
    def invalid_range(self) -> bool:
        return bool(self.start_ym and self.end_ym and self.start_ym > self.end_ym)

    def load_units(self) -> bool:
        try:
            options = self.client.product_units(self.product.id, dataset=self.dataset)
        except TransportError as exc:
            self.error = str(exc)
            return False
        self.units = options.labels
        self.unit = self.units[0] if self.units else ""
        self._update_availability(options)
        self._default_window()
        return True

    def load_locations(self) -> bool:
        """Load regions (consumer dataset) or wholesale markets for the unit."""
        if not self.unit:
            self.locations = []
            return True
        try:
            if self.dataset == "consumidor":
                options = self.client.product_regions(self.product.id, self.unit, dataset=self.dataset)
            else:
                options = self.client.product_markets(self.product.id, self.unit, dataset=self.dataset)
        except TransportError as exc:
            self.error = str(exc)
            return False
        self.locations = options.options
        self._update_availability(options)
        self._default_window()
        return True

    def _default_window(self):
        min_ym, max_ym = _to_ym(self.available_from), _to_ym(self.available_to)
        if not min_ym or not max_ym:
            return
        self.start_ym = clamp_month(self.start_ym, min_ym, max_ym) if self.start_ym else min_ym
        self.end_ym = clamp_month(self.end_ym, min_ym, max_ym) if self.end_ym else max_ym

    def set_months(self, start_ym: str, end_ym: str) -> bool:
        self.start_ym, self.end_ym = start_ym, end_ym
        if self.invalid_range:
            self.points = []
            self.validation_error = (
                f"La fecha inicial ({start_ym}) no puede ser mayor a la final ({end_ym})"
            )
            self._generation.invalidate()
            return False
        self.validation_error = None
        return True

    def load_series(self) -> bool:
        if not self.unit or self.invalid_range:
            self.points = []
            return False

        min_ym, max_ym = _to_ym(self.available_from), _to_ym(self.available_to)
        start_ym = clamp_month(self.start_ym, min_ym, max_ym) if self.start_ym else ""
        end_ym = clamp_month(self.end_ym, min_ym, max_ym) if self.end_ym else ""
        try:
            window = window_from_months(start_ym, end_ym)
        except InvalidDateRangeError as exc:
            self.error = str(exc)
            self.points = []
            return False

        location = {"region_id": self.location_id} if self.dataset == "consumidor" else {"mercado_id": self.location_id}
        token = self._generation.next()
        try:
            points = self.client.product_series(
                self.product.id,
                self.unit,
                dataset=self.dataset,
                desde=window.start or None,
                hasta=window.end or None,
                **location,
            )
        except TransportError as exc:
            if self._generation.is_current(token):
                self.error = str(exc)
                self.points = []
            return False
        if not self._generation.is_current(token):
            return False
        self.points = points
        self.error = None
        return True

    def summary(self) -> SeriesSummary:
        return summarize_series(self.points)

    def chart_points(self) -> List[Tuple[str, float]]:
        return bucket_points(self.points, self.granularity)


class CatalogSearch:
    """Paginated product catalog listing with a debounced free-text query."""

    def __init__(self, client, config: Optional[Dict[str, Any]] = None):
        dashboard_cfg = get_dashboard_config(config)
        comparison_cfg = get_comparison_config(config)
        self.client = client
        self.dataset: str = dashboard_cfg["dataset"]
        self.page_size = int(dashboard_cfg["page_size"])

        self.query = ""
        self.starts_with = ""
        self.order = "az"
        self.page = 1

        self.items: List[Product] = []
        self.total_count = 0
        self.error: Optional[str] = None
        self.loading = False

        self._generation = RequestGeneration()
        self._debounce = Debouncer(float(comparison_cfg["debounce_ms"]) / 1000.0, self.fetch)

    @property
    def ordering(self) -> str:
        return "nombre" if self.order == "az" else "-nombre"

    @property
    def total_pages(self) -> int:
        if self.total_count > 0 and self.page_size > 0:
            return math.ceil(self.total_count / self.page_size)
        return 1

    @property
    def shown_range(self) -> Tuple[int, int]:
        if not self.total_count:
            return 0, 0
        return (self.page - 1) * self.page_size + 1, min(self.page * self.page_size, self.total_count)

    def set_query(self, query: str, debounce: bool = True):
        """Update the query and schedule a debounced fetch."""
        self.query = query
        self.page = 1
        if debounce:
            self._debounce()

    def set_starts_with(self, letter: str):
        self.starts_with = letter
        self.page = 1
        if not letter:
            self.query = ""

    def set_order(self, order: str):
        if order not in ("az", "za"):
            raise ValueError(f"Unsupported order: {order}")
        self.order = order
        self.page = 1

    def set_dataset(self, dataset: str):
        self.dataset = dataset
        self.page = 1

    def set_page_size(self, page_size: int):
        self.page_size = max(1, int(page_size))
        self.page = 1

    def set_page(self, page: int):
        self.page = max(1, min(self.total_pages, int(page)))

    def flush(self) -> bool:
        return self._debounce.flush()

    def fetch(self) -> bool:
        token = self._generation.next()
        self.loading = True
        self.error = None
        try:
            page = self.client.list_products(
                dataset=self.dataset,
                q=self.query.strip() or None,
                starts_with=self.starts_with or None,
                ordering=self.ordering,
                page=self.page,
                page_size=self.page_size,
            )
        except TransportError as exc:
            if self._generation.is_current(token):
                self.error = str(exc) or "Error al cargar productos"
                self.loading = False
            return False

        if not self._generation.is_current(token):
            logger.warning(f"Discarding stale catalog response (generation {token})")
            return False
        self.items = page.items
        self.total_count = page.count
        self.loading = False
        return True
