"""Tests for trend KPIs, variation bars and last-period share."""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from comparador.trends import last_period_share, summarize_trends, variation_bars


ROWS = [
    {"period": "2024-01", "A": 100.0, "B": 200.0},
    {"period": "2024-02", "A": 110.0, "B": 180.0},
    {"period": "2024-03", "A": 120.0, "B": 220.0},
]


class TestSummarizeTrends(unittest.TestCase):
    def test_summary(self):
        summary = summarize_trends(ROWS, ["A", "B"])
        self.assertEqual(summary.latest_average, 170.0)
        self.assertAlmostEqual(summary.variation, 20 / 150)
        self.assertEqual(summary.average_volatility, 30.0)
        self.assertEqual(summary.top_mover.product, "A")
        self.assertAlmostEqual(summary.top_mover.change, 0.2)

    def test_missing_cells_count_as_zero(self):
        rows = [{"period": "2024-01", "A": 100.0}, {"period": "2024-02", "A": 100.0, "B": 100.0}]
        summary = summarize_trends(rows, ["A", "B"])
        self.assertEqual(summary.latest_average, 100.0)
        self.assertEqual(summary.variation, 1.0)
        # Both changes are 0; the first product wins the tie.
        self.assertEqual(summary.top_mover.product, "A")

    def test_empty_returns_sentinel(self):
        summary = summarize_trends([], [])
        self.assertEqual((summary.top_mover.product, summary.top_mover.change), ("-", 0.0))
        self.assertEqual(summary.latest_average, 0.0)
        self.assertEqual(summarize_trends(ROWS, []).top_mover.product, "-")

    def test_product_without_values_has_no_volatility(self):
        summary = summarize_trends(ROWS, ["A", "C"])
        self.assertEqual(summary.average_volatility, 10.0)


class TestDerivedViews(unittest.TestCase):
    def test_variation_bars_sorted_desc(self):
        bars = variation_bars(ROWS, ["B", "A"])
        self.assertEqual(bars, [{"producto": "A", "change": 20.0}, {"producto": "B", "change": 10.0}])

    def test_last_period_share(self):
        rows = ROWS + [{"period": "2024-04", "A": 120.0, "B": 0.0}]
        slices, total = last_period_share(rows, ["A", "B", "C"])
        self.assertEqual(slices, [{"name": "A", "value": 120.0}])
        self.assertEqual(total, 120.0)
        self.assertEqual(last_period_share([], ["A"]), ([], 0.0))


if __name__ == "__main__":
    unittest.main()
