"""Export module for basket comparisons and merged price series."""

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from comparador.basket import BasketAggregator
from comparador.config_loader import get_exports_dir
from comparador.ranking import RankClassifier, TIER_NONE
from comparador.series import PERIOD_COLUMN, MergedRow


def merged_rows_frame(rows: Sequence[MergedRow], product_names: Sequence[str]) -> pd.DataFrame:
    """Tabulate merged series rows, one column per product (absent cells are NaN)."""
    columns = [PERIOD_COLUMN] + list(product_names)
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(list(rows)).reindex(columns=columns)


def basket_totals_frame(
    aggregator: BasketAggregator,
    store_names: Optional[Dict[str, str]] = None,
    classifier: Optional[RankClassifier] = None,
) -> pd.DataFrame:
    """Per-store basket totals with their tier, cheapest first."""
    comparison = aggregator.compare()
    classifier = classifier or RankClassifier()
    comparable = set(comparison.comparable)
    store_names = store_names or {}

    records: List[Dict] = []
    for store_id, total in aggregator.sorted_stores(ascending=True):
        tier = (
            classifier.classify(total, comparison.best_total, comparison.worst_total)
            if store_id in comparable
            else TIER_NONE
        )
        records.append(
            {
                "store_id": store_id,
                "store": store_names.get(store_id, store_id),
                "total": total,
                "tier": tier,
                "has_prices": store_id in comparable,
            }
        )
    return pd.DataFrame(records, columns=["store_id", "store", "total", "tier", "has_prices"])


def _output_path(config: Optional[dict], output_path: Optional[str], stem: str, suffix: str) -> str:
    if output_path is None:
        out_dir = get_exports_dir(config)
        output_path = f"{out_dir}/{stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{suffix}"
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    return output_path


def export_frame(
    df: pd.DataFrame,
    config: Optional[dict] = None,
    output_path: Optional[str] = None,
    stem: str = "export",
    export_format: str = "csv",
) -> str:
    """Write a frame to CSV or JSON (records).

    Args:
        df: Frame to write
        config: Configuration dictionary (export directory)
        output_path: Explicit path; a timestamped name in the export
            directory is used when None
        stem: File name prefix for generated paths
        export_format: "csv" or "json"

    Returns:
        Path of the written file
    """
    if export_format not in ("csv", "json"):
        raise ValueError(f"Unsupported export format: {export_format}")

    path = _output_path(config, output_path, stem, export_format)
    if export_format == "csv":
        df.to_csv(path, index=False)
    else:
        df.to_json(path, orient="records", force_ascii=False, indent=2)
    logger.info(f"Exported {len(df)} rows to {path}")
    return path
