"""Command-line interface for the price comparison dashboard core."""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from loguru import logger

from comparador.api_client import PreciosApiClient
from comparador.config_loader import ensure_directories, get_logging_config, load_config
from comparador.coverage import MONTH_PATTERN, PERIOD_MONTHS
from comparador.exporter import basket_totals_frame, export_frame, merged_rows_frame
from comparador.models import Product
from comparador.pricebook import normalize_label
from comparador.series import PERIOD_COLUMN
from comparador.sessions import CatalogSearch, ComparisonSession, DashboardSession, ProductDetailSession


class MonthParamType(click.ParamType):
    """Click param type to validate month values in YYYY-MM format."""

    name = "month"

    def convert(self, value, param, ctx):
        if value is None:
            return value

        if not MONTH_PATTERN.match(value):
            self.fail(
                "Formato inválido. Usá YYYY-MM (ejemplo válido: 2024-06).",
                param,
                ctx,
            )

        return value


MONTH_TYPE = MonthParamType()


def setup_logging(config: dict, level: Optional[str] = None):
    """Setup logging configuration."""
    log_config = get_logging_config(config)
    level = level or log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/comparador.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


def parse_basket_entry(entry: str) -> Tuple[str, str]:
    """Split ``NAME=QTY`` into (name, qty). Quantity defaults to "1"."""
    name, sep, quantity = entry.rpartition("=")
    if not sep or not name.strip():
        return entry.strip(), "1"
    return name.strip(), quantity.strip()


def _format_money(value: Optional[float]) -> str:
    return "N/D" if value is None else f"${value:,.2f}"


def _format_cell(value) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Comparador de precios - basket comparison and price series dashboard."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg, level="DEBUG" if verbose else None)

        logger.info("Comparador initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("products", nargs=-1, required=True)
@click.option("--store", "-s", "stores", multiple=True, help="Chain to compare (repeatable). Defaults to the first chains")
@click.option("--desc", is_flag=True, help="List the most expensive store first")
@click.option("--export", "export_format", type=click.Choice(["csv", "json"]), default=None, help="Export store totals")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output path for the export")
@click.pass_context
def compare(ctx, products, stores, desc: bool, export_format: Optional[str], output: Optional[str]):
    """Compare a basket across chains. PRODUCTS take the form NAME or NAME=QTY."""
    config = ctx.obj["config"]

    try:
        session = ComparisonSession(PreciosApiClient(config), config)
        if not session.load():
            click.echo(f"Error: {session.error}", err=True)
            sys.exit(1)

        for entry in products:
            name, quantity = parse_basket_entry(entry)
            product = session.find_product(name)
            if product is None:
                click.echo(f"Producto no encontrado: {name}", err=True)
                continue
            session.add_product(product, quantity, schedule=False)

        if not session.basket:
            click.echo("Error: la canasta está vacía", err=True)
            sys.exit(1)

        if stores:
            wanted = {normalize_label(store) for store in stores}
            for store in session.stores.stores:
                enable = normalize_label(store.name) in wanted or store.id in stores
                if session.stores.is_enabled(store.id) != enable:
                    session.toggle_store(store.id, schedule=False)

        if not session.request_prices():
            click.echo(f"Error: {session.error or 'sin supermercados seleccionados'}", err=True)
            sys.exit(1)

        comparison = session.comparison()
        tiers = session.tiers(comparison)

        click.echo(f"\n{'='*60}")
        click.echo("BASKET COMPARISON")
        click.echo(f"{'='*60}")
        for item in session.basket:
            click.echo(f"  {item.quantity} x {item.name}")
        click.echo("-"*60)
        click.echo(f"{'Store':<28} {'Total':>16} {'Tier':>10}")
        for store_id, total in session.aggregator().sorted_stores(ascending=not desc):
            click.echo(f"{session.stores.name_for(store_id):<28} {_format_money(total):>16} {tiers[store_id]:>10}")

        if comparison.best_store is None:
            click.echo("\nNo hay precios disponibles para la canasta")
        else:
            click.echo(f"\nMejor: {session.stores.name_for(comparison.best_store)} ({_format_money(comparison.best_total)})")
            click.echo(f"Peor: {session.stores.name_for(comparison.worst_store)} ({_format_money(comparison.worst_total)})")
            click.echo(f"Ahorro: {_format_money(comparison.savings)} ({comparison.savings_percent * 100:.1f}%)")

        ranges = session.product_ranges()
        click.echo("\nRango por producto:")
        for item in session.basket:
            price_range = ranges.get(item.product_id)
            if price_range is None:
                click.echo(f"  - {item.name}: sin precios")
                continue
            click.echo(
                f"  - {item.name}: {_format_money(price_range.min_price)} "
                f"({session.stores.name_for(price_range.min_store)}) - "
                f"{_format_money(price_range.max_price)} ({session.stores.name_for(price_range.max_store)})"
            )

        if session.unmatched_labels:
            click.echo(f"\nEtiquetas sin coincidencia: {', '.join(session.unmatched_labels)}")

        if export_format:
            store_names = {store.id: store.name for store in session.stores.stores}
            df = basket_totals_frame(session.aggregator(), store_names, session.classifier)
            path = export_frame(df, config, output, stem="basket_totals", export_format=export_format)
            click.echo(f"\nExportado: {path}")

        click.echo(f"{'='*60}")

    except Exception as e:
        logger.exception("Basket comparison failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("products", nargs=-1, required=True)
@click.option("--category", default=None, help="Group (consumidor) or subsector (mayorista) id")
@click.option("--dataset", type=click.Choice(["consumidor", "mayorista"]), default=None, help="Dataset")
@click.option("--period", type=click.Choice(list(PERIOD_MONTHS)), default=None, help="Months back from today")
@click.option("--from", "from_month", type=MONTH_TYPE, default=None, help="Start month YYYY-MM")
@click.option("--to", "to_month", type=MONTH_TYPE, default=None, help="End month YYYY-MM")
@click.option("--granularity", type=click.Choice(["month", "year"]), default=None, help="Bucket size")
@click.option("--index", "index_mode", is_flag=True, help="Rebase each product to 100 at the first period")
@click.option("--export", "export_format", type=click.Choice(["csv", "json"]), default=None, help="Export merged rows")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output path for the export")
@click.pass_context
def series(
    ctx,
    products,
    category: Optional[str],
    dataset: Optional[str],
    period: Optional[str],
    from_month: Optional[str],
    to_month: Optional[str],
    granularity: Optional[str],
    index_mode: bool,
    export_format: Optional[str],
    output: Optional[str],
):
    """Compare the price series of up to four products."""
    config = ctx.obj["config"]

    if bool(from_month) ^ bool(to_month):
        click.echo("Error: si usas --from o --to debes indicar ambos.", err=True)
        sys.exit(2)

    try:
        session = DashboardSession(PreciosApiClient(config), config)
        if dataset:
            session.set_dataset(dataset)
        if granularity:
            session.granularity = granularity
        session.index_mode = index_mode

        if from_month and to_month:
            session.set_months(from_month, to_month)
        elif period:
            session.set_period(period)
        if session.validation_error:
            click.echo(f"Error: {session.validation_error}", err=True)
            sys.exit(2)

        if not session.load_products(category):
            click.echo(f"Error: {session.error}", err=True)
            sys.exit(1)

        by_name = {normalize_label(product.name): product for product in session.products}
        for name in products:
            product = by_name.get(normalize_label(name))
            if product is None:
                click.echo(f"Producto no encontrado: {name}", err=True)
                continue
            if not session.toggle_product(product.name):
                click.echo(f"Se ignoró {product.name}: máximo {session.max_products} productos", err=True)

        if not session.load_series():
            click.echo(f"Error: {session.error}", err=True)
            sys.exit(1)

        view = session.view()
        names = view.coverage.valid

        click.echo(f"\n{'='*60}")
        click.echo(f"PRICE SERIES ({session.start_ym} -> {session.end_ym})")
        click.echo(f"{'='*60}")
        if view.notice:
            click.echo(view.notice)
        if not names:
            click.echo("Sin datos para graficar")
        else:
            click.echo(f"{'Periodo':<10} " + " ".join(f"{name[:16]:>16}" for name in names))
            for row in view.chart_rows:
                click.echo(
                    f"{row[PERIOD_COLUMN]:<10} " + " ".join(f"{_format_cell(row.get(name)):>16}" for name in names)
                )

            summary = view.summary
            click.echo(f"\nPromedio actual: {_format_money(summary.latest_average)}")
            click.echo(f"Variación: {summary.variation * 100:.2f}%")
            click.echo(f"Volatilidad media: {_format_money(summary.average_volatility)}")
            click.echo(f"Mayor suba: {summary.top_mover.product} ({summary.top_mover.change * 100:.2f}%)")

            click.echo("\nVariación por producto:")
            for bar in view.bars:
                click.echo(f"  - {bar['producto']}: {bar['change']:.2f}%")

        if export_format:
            df = merged_rows_frame(view.chart_rows, names)
            path = export_frame(df, config, output, stem="price_series", export_format=export_format)
            click.echo(f"\nExportado: {path}")

        click.echo(f"{'='*60}")

    except Exception as e:
        logger.exception("Series comparison failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("product_id")
@click.option("--name", default=None, help="Display name for the product")
@click.option("--dataset", type=click.Choice(["consumidor", "mayorista"]), default="consumidor", show_default=True)
@click.option("--location", default=None, help="Region (consumidor) or market (mayorista) id")
@click.option("--from", "from_month", type=MONTH_TYPE, default=None, help="Start month YYYY-MM")
@click.option("--to", "to_month", type=MONTH_TYPE, default=None, help="End month YYYY-MM")
@click.option("--granularity", type=click.Choice(["month", "year"]), default="month", show_default=True)
@click.pass_context
def product(
    ctx,
    product_id: str,
    name: Optional[str],
    dataset: str,
    location: Optional[str],
    from_month: Optional[str],
    to_month: Optional[str],
    granularity: str,
):
    """Show the price series of a single product."""
    config = ctx.obj["config"]

    try:
        session = ProductDetailSession(
            PreciosApiClient(config),
            Product(id=product_id, name=name or product_id),
            dataset=dataset,
            granularity=granularity,
        )
        if from_month or to_month:
            session.set_months(from_month or "", to_month or "")
            if session.validation_error:
                click.echo(f"Error: {session.validation_error}", err=True)
                sys.exit(2)

        if not session.load_units() or not session.load_locations():
            click.echo(f"Error: {session.error}", err=True)
            sys.exit(1)
        if not session.unit:
            click.echo("Sin unidades disponibles para el producto")
            return
        session.location_id = location

        if not session.load_series():
            click.echo(f"Error: {session.error or 'rango inválido'}", err=True)
            sys.exit(1)

        summary = session.summary()
        click.echo(f"\n{'='*60}")
        click.echo(f"{session.product.name} ({session.unit}) {session.start_ym} -> {session.end_ym}")
        click.echo(f"{'='*60}")
        if summary.actual is None:
            click.echo("Sin datos para el periodo seleccionado")
        else:
            click.echo(f"Actual: {_format_money(summary.actual)}")
            click.echo(f"Promedio: {_format_money(summary.promedio)}")
            click.echo(f"Máximo: {_format_money(summary.maximo)}")
            click.echo(f"Variación: {summary.variacion:.2f}%")
            click.echo("")
            for day, value in session.chart_points():
                click.echo(f"  {day}  {_format_money(value)}")
        click.echo(f"{'='*60}")

    except Exception as e:
        logger.exception("Product detail failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--query", "-q", default="", help="Free-text search")
@click.option("--starts-with", default="", help="Initial letter filter")
@click.option("--order", type=click.Choice(["az", "za"]), default="az", show_default=True)
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--page-size", type=int, default=None, help="Items per page")
@click.option("--dataset", type=click.Choice(["consumidor", "mayorista"]), default=None)
@click.pass_context
def catalog(
    ctx,
    query: str,
    starts_with: str,
    order: str,
    page: int,
    page_size: Optional[int],
    dataset: Optional[str],
):
    """List catalog products, paginated."""
    config = ctx.obj["config"]

    try:
        search = CatalogSearch(PreciosApiClient(config), config)
        if dataset:
            search.set_dataset(dataset)
        if page_size:
            search.set_page_size(page_size)
        search.set_order(order)
        search.set_starts_with(starts_with)
        search.set_query(query, debounce=False)
        search.page = max(1, page)

        if not search.fetch():
            click.echo(f"Error: {search.error}", err=True)
            sys.exit(1)

        first, last = search.shown_range
        click.echo(f"Mostrando {first}-{last} de {search.total_count} (página {search.page}/{search.total_pages})")
        for item in search.items:
            click.echo(f"  {item.id:>8}  {item.name}")

    except Exception as e:
        logger.exception("Catalog listing failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
