"""Tests for merged-row and basket-total exports."""

import json
import sys
import tempfile
import unittest
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from comparador.basket import BasketAggregator
from comparador.exporter import basket_totals_frame, export_frame, merged_rows_frame
from comparador.models import BasketItem
from comparador.pricebook import PriceMatrix


class TestFrames(unittest.TestCase):
    def test_merged_rows_frame_keeps_gaps(self):
        rows = [{"period": "2024-01", "P": 110.0}, {"period": "2024-02", "P": 80.0, "Q": 5.0}]
        df = merged_rows_frame(rows, ["P", "Q"])
        self.assertEqual(list(df.columns), ["period", "P", "Q"])
        self.assertTrue(pd.isna(df.loc[0, "Q"]))
        self.assertEqual(df.loc[1, "Q"], 5.0)

    def test_empty_merged_rows(self):
        df = merged_rows_frame([], ["P"])
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), ["period", "P"])

    def test_basket_totals_frame(self):
        matrix = PriceMatrix({"A": {"s1": 1000, "s2": 1200}})
        aggregator = BasketAggregator(matrix, [BasketItem("A", 1)], ["s2", "s1", "s3"])
        df = basket_totals_frame(aggregator, {"s1": "Super Uno"})

        self.assertEqual(list(df["store_id"]), ["s3", "s1", "s2"])
        self.assertEqual(list(df["store"]), ["s3", "Super Uno", "s2"])
        self.assertEqual(list(df["tier"]), ["none", "best", "worst"])
        self.assertEqual(list(df["has_prices"]), [False, True, True])


class TestExportFrame(unittest.TestCase):
    def setUp(self):
        self.df = pd.DataFrame([{"period": "2024-01", "P": 110.0}])

    def test_csv(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = export_frame(self.df, output_path=f"{tmp}/out/series.csv")
            self.assertEqual(pd.read_csv(path).loc[0, "P"], 110.0)

    def test_json_in_export_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = {"exports": {"output_dir": tmp}}
            path = export_frame(self.df, config, stem="series", export_format="json")
            self.assertTrue(Path(path).name.startswith("series_"))
            with open(path, encoding="utf-8") as f:
                self.assertEqual(json.load(f), [{"period": "2024-01", "P": 110.0}])

    def test_unknown_format(self):
        with self.assertRaises(ValueError):
            export_frame(self.df, export_format="xlsx")


if __name__ == "__main__":
    unittest.main()
