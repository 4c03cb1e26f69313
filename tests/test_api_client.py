"""Tests for the HTTP data source and response coercion."""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from comparador.api_client import PreciosApiClient, TransportError, clean_params, coerce_array


def _response(payload, status_code=200):
    response = MagicMock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestCoercion(unittest.TestCase):
    def test_coerce_array(self):
        self.assertEqual(coerce_array([1, 2]), [1, 2])
        self.assertEqual(coerce_array({"results": [1]}), [1])
        self.assertEqual(coerce_array({"data": [2]}), [2])
        self.assertEqual(coerce_array({"points": [3]}, "points"), [3])
        self.assertEqual(coerce_array({"count": 0}), [])
        self.assertEqual(coerce_array(None), [])

    def test_clean_params(self):
        self.assertEqual(clean_params({"a": None, "b": "", "c": 0, "d": "x"}), {"c": 0, "d": "x"})


class TestPreciosApiClient(unittest.TestCase):
    def setUp(self):
        self.client = PreciosApiClient({"api": {"base_url": "http://api.test/api/"}})

    @patch("requests.Session.request")
    def test_list_chains(self, mock_request):
        mock_request.return_value = _response({"results": [{"nombre": "Super Uno"}, {"nombre": "super uno"}, {"x": 1}]})
        stores = self.client.list_chains()
        self.assertEqual([(s.id, s.name) for s in stores], [("super_uno", "Super Uno")])
        self.assertEqual(mock_request.call_args.args, ("GET", "http://api.test/api/v1/z_cadenas/"))

    @patch("requests.Session.request")
    def test_compare_prices_posts_names(self, mock_request):
        mock_request.return_value = _response([
            {"etiqueta_producto": "leche entera 1l", "supermercado": "Super Uno", "precio_final": "1000.5"},
            {"etiqueta_producto": "arroz", "supermercado": "Super Dos", "precio_final": None},
        ])
        quotes = self.client.compare_prices(["Leche Entera 1l"], ["Super Uno", "Super Dos"])

        self.assertEqual(mock_request.call_args.args[0], "POST")
        self.assertEqual(
            mock_request.call_args.kwargs["json"],
            {"productos": ["Leche Entera 1l"], "supermercados": ["Super Uno", "Super Dos"]},
        )
        self.assertEqual(quotes[0].final_price, 1000.5)
        self.assertEqual(quotes[0].store_id, "super_uno")
        self.assertIsNone(quotes[1].final_price)

    @patch("requests.Session.request")
    def test_list_products(self, mock_request):
        mock_request.return_value = _response({"count": 42, "results": [{"id": 7, "nombre": "Leche"}, {"nombre": "sin id"}]})
        page = self.client.list_products(dataset="mayorista", category_id="3", q="le", page=2)

        self.assertEqual(page.count, 42)
        self.assertEqual([(p.id, p.name) for p in page.items], [("7", "Leche")])
        params = mock_request.call_args.kwargs["params"]
        self.assertEqual(params, {"dataset": "mayorista", "q": "le", "page": 2, "subsector_id": "3"})

    @patch("requests.Session.request")
    def test_bare_product_list_counts_items(self, mock_request):
        mock_request.return_value = _response([{"id": 1, "nombre": "Pan"}])
        self.assertEqual(self.client.list_products().count, 1)

    @patch("requests.Session.request")
    def test_product_series_coerces_points(self, mock_request):
        mock_request.return_value = _response({
            "points": [
                {"fecha": "2024-02-01", "precio": "80"},
                {"fecha": "2024-01-01", "valor": 100},
                {"fecha": "2024-03-01"},
            ]
        })
        points = self.client.product_series("5", "kg", desde="2024-01-01")

        self.assertEqual([(p.date, p.value) for p in points], [("2024-01-01", 100.0), ("2024-02-01", 80.0), ("2024-03-01", 0.0)])
        params = mock_request.call_args.kwargs["params"]
        self.assertEqual(params["agg"], "month")
        self.assertNotIn("hasta", params)

    @patch("requests.Session.request")
    def test_unit_options_carry_availability(self, mock_request):
        mock_request.return_value = _response({"unidades": ["kg", {"id": 2, "nombre": "litro"}], "desde": "2020-01-01", "hasta": "2024-05-31"})
        options = self.client.product_units("5")
        self.assertEqual(options.labels, ["kg", "litro"])
        self.assertEqual(options.available_to, "2024-05-31")

    @patch("requests.Session.request")
    def test_http_error_raises_transport_error(self, mock_request):
        mock_request.return_value = _response({}, status_code=503)
        with self.assertRaises(TransportError) as ctx:
            self.client.list_labels()
        self.assertEqual(ctx.exception.status_code, 503)

    @patch("requests.Session.request")
    def test_network_error_raises_transport_error(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportError) as ctx:
            self.client.list_labels()
        self.assertIsNone(ctx.exception.status_code)

    @patch("requests.Session.request")
    def test_invalid_json_raises_transport_error(self, mock_request):
        response = _response(None)
        response.json.side_effect = ValueError("no json")
        mock_request.return_value = response
        with self.assertRaises(TransportError):
            self.client.list_labels()


if __name__ == "__main__":
    unittest.main()
