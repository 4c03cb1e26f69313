"""In-memory data source used by the session and CLI tests."""

from comparador.api_client import TransportError
from comparador.models import OptionList, PriceQuote, Product, ProductPage, SeriesPoint, Store


class FakeSource:
    """Implements the ``PreciosApiClient`` surface with canned data."""

    def __init__(self):
        self.chains = [Store.from_name("Super Uno"), Store.from_name("Super Dos")]
        self.labels = ["leche entera 1l", "arroz largo 1kg", "yerba 500g"]
        self.quotes = [
            PriceQuote("LECHE ENTERA 1L", "Super Uno", 1000.0),
            PriceQuote("leche entera 1l", "Super Dos", 1200.0),
            PriceQuote("arroz largo 1kg", "Super Uno", 500.0),
            PriceQuote("arroz largo 1kg", "Super Dos", 400.0),
        ]
        self.products = [
            Product("1", "Leche"),
            Product("2", "Pan"),
            Product("3", "Yerba"),
            Product("4", "Arroz"),
            Product("5", "Fideos"),
        ]
        self.points = {
            "1": [SeriesPoint("2024-01-05", 100.0), SeriesPoint("2024-01-20", 120.0), SeriesPoint("2024-02-10", 80.0)],
            "2": [SeriesPoint("2023-05-01", 50.0)],
            "3": [SeriesPoint("2024-01-10", 200.0), SeriesPoint("2024-02-10", 220.0)],
        }
        self.product_count = None
        self.availability = (None, None)

        self.fail = False
        self.on_compare = None
        self.on_series = None
        self.compare_calls = []
        self.product_calls = []
        self.series_calls = []

    def _check(self):
        if self.fail:
            raise TransportError("HTTP 500", status_code=500)

    def list_chains(self):
        self._check()
        return list(self.chains)

    def list_labels(self):
        self._check()
        return list(self.labels)

    def compare_prices(self, product_names, store_names):
        self.compare_calls.append((list(product_names), list(store_names)))
        if self.on_compare:
            self.on_compare()
        self._check()
        return list(self.quotes)

    def list_categories(self, dataset="consumidor"):
        self._check()
        return [{"id": "10", "nombre": "Almacen"}]

    def list_products(self, **kwargs):
        self.product_calls.append(kwargs)
        self._check()
        count = self.product_count if self.product_count is not None else len(self.products)
        return ProductPage(items=list(self.products), count=count)

    def product_units(self, product_id, dataset="consumidor"):
        self._check()
        available_from, available_to = self.availability
        return OptionList(
            options=[{"id": "lt", "nombre": "litro"}],
            available_from=available_from,
            available_to=available_to,
        )

    def product_regions(self, product_id, unit, dataset="consumidor"):
        self._check()
        return OptionList(options=[{"id": "r1", "nombre": "Patagonia"}])

    def product_markets(self, product_id, unit, dataset="mayorista"):
        self._check()
        return OptionList(options=[{"id": "m1", "nombre": "Mercado Central"}])

    def product_series(self, product_id, unit, dataset="consumidor", desde=None, hasta=None, **kwargs):
        self.series_calls.append({"product_id": product_id, "unit": unit, "desde": desde, "hasta": hasta, **kwargs})
        if self.on_series:
            self.on_series()
        self._check()
        return list(self.points.get(product_id, []))
