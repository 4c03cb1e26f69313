"""CLI tests for compare/series/product/catalog commands."""

import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import pandas as pd
from click.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent))

from comparador.cli import cli, parse_basket_entry
from tests.fakes import FakeSource


class TestParseBasketEntry(unittest.TestCase):
    def test_quantity_suffix(self):
        self.assertEqual(parse_basket_entry("leche entera 1l=2"), ("leche entera 1l", "2"))
        self.assertEqual(parse_basket_entry("yerba 500g"), ("yerba 500g", "1"))
        self.assertEqual(parse_basket_entry("=3"), ("=3", "1"))


@patch("comparador.cli.setup_logging")
@patch("comparador.cli.ensure_directories")
@patch("comparador.cli.load_config", return_value={"logging": {}})
class TestCliCommands(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.source = FakeSource()
        patcher = patch("comparador.cli.PreciosApiClient", return_value=self.source)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_compare(self, *_mocks):
        result = self.runner.invoke(cli, ["compare", "leche entera 1l=2", "arroz largo 1kg"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Super Uno", result.output)
        self.assertIn("$2,500.00", result.output)
        self.assertIn("Ahorro: $300.00", result.output)

    def test_compare_restricted_to_store(self, *_mocks):
        result = self.runner.invoke(cli, ["compare", "leche entera 1l", "--store", "super dos"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.source.compare_calls[0][1], ["Super Dos"])

    def test_compare_unknown_product_fails(self, *_mocks):
        result = self.runner.invoke(cli, ["compare", "caviar"])
        self.assertEqual(result.exit_code, 1)

    def test_compare_transport_failure(self, *_mocks):
        self.source.fail = True
        result = self.runner.invoke(cli, ["compare", "leche entera 1l"])
        self.assertEqual(result.exit_code, 1)

    def test_compare_export_csv(self, *_mocks):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "totals.csv"
            result = self.runner.invoke(
                cli,
                ["compare", "leche entera 1l=2", "arroz largo 1kg", "--export", "csv", "--output", str(out)],
            )
            self.assertEqual(result.exit_code, 0, result.output)
            df = pd.read_csv(out)
            self.assertEqual(list(df["store_id"]), ["super_uno", "super_dos"])
            self.assertEqual(list(df["tier"]), ["best", "worst"])

    def test_series(self, *_mocks):
        result = self.runner.invoke(cli, ["series", "leche", "pan", "--from", "2024-01", "--to", "2024-06"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Sin datos en el periodo seleccionado para: Pan", result.output)
        self.assertIn("2024-02", result.output)

    def test_series_requires_both_bounds(self, *_mocks):
        result = self.runner.invoke(cli, ["series", "leche", "--from", "2024-01"])
        self.assertEqual(result.exit_code, 2)

    def test_series_rejects_inverted_range(self, *_mocks):
        result = self.runner.invoke(cli, ["series", "leche", "--from", "2024-06", "--to", "2024-01"])
        self.assertEqual(result.exit_code, 2)
        self.assertEqual(self.source.series_calls, [])

    def test_series_rejects_bad_month(self, *_mocks):
        result = self.runner.invoke(cli, ["series", "leche", "--from", "2024-1", "--to", "2024-06"])
        self.assertEqual(result.exit_code, 2)

    def test_product(self, *_mocks):
        result = self.runner.invoke(cli, ["product", "1", "--name", "Leche", "--from", "2024-01", "--to", "2024-03"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Actual: $80.00", result.output)
        self.assertIn("2024-01-01", result.output)

    def test_catalog(self, *_mocks):
        result = self.runner.invoke(cli, ["catalog", "--query", "le", "--order", "za"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Mostrando 1-5 de 5", result.output)
        self.assertEqual(self.source.product_calls[-1]["ordering"], "-nombre")


if __name__ == "__main__":
    unittest.main()
