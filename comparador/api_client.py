"""HTTP data source for catalog, chain, price and series endpoints.

Responses are coerced here (wrapped-vs-bare arrays, missing fields) so the
aggregation core only ever sees plain models.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import requests
from loguru import logger

from comparador.config_loader import get_api_config
from comparador.models import OptionList, PriceQuote, Product, ProductPage, SeriesPoint, Store, coerce_number
from comparador.pricebook import stores_from_chains


class TransportError(Exception):
    """Raised when a request fails (network error, timeout or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def coerce_array(payload: Any, key: Optional[str] = None) -> List[Any]:
    """Extract a list from a bare array or a ``{key|results|data: [...]}`` wrapper."""
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    if key and isinstance(payload.get(key), list):
        return payload[key]
    if isinstance(payload.get("results"), list):
        return payload["results"]
    if isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def clean_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset query parameters (None or empty string)."""
    return {k: v for k, v in params.items() if v is not None and v != ""}


def _option_from_raw(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        nombre = raw.get("nombre") or raw.get("unidad") or raw.get("name") or raw.get("label") or ""
        return {"id": raw.get("id", nombre), "nombre": str(nombre)}
    return {"id": raw, "nombre": str(raw)}


def _point_from_raw(raw: Any) -> SeriesPoint:
    raw = raw if isinstance(raw, dict) else {}
    value = raw.get("precio")
    if value is None:
        value = raw.get("valor")
    if value is None:
        value = raw.get("y")
    return SeriesPoint(date=str(raw.get("fecha") or ""), value=coerce_number(value))


class PreciosApiClient:
    """Thin ``requests`` client over the price-transparency REST API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        api_config = get_api_config(config)
        self.base_url = str(api_config["base_url"]).rstrip("/")
        self.timeout = float(api_config.get("timeout_seconds", 30))
        self.endpoints = api_config["endpoints"]
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/json")

    def url(self, path: str) -> str:
        clean_path = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{clean_path}"

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> Any:
        url = self.url(path)
        try:
            response = self.session.request(
                method,
                url,
                params=clean_params(params or {}),
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise TransportError(str(exc)) from exc

        if not response.ok:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            raise TransportError(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Respuesta invalida de {url}", status_code=response.status_code) from exc

    def list_chains(self) -> List[Store]:
        payload = self._request("GET", f"v1/{self.endpoints['chains']}/")
        return stores_from_chains(row for row in coerce_array(payload) if isinstance(row, dict))

    def list_labels(self) -> List[str]:
        payload = self._request("GET", f"v1/{self.endpoints['labels']}/")
        return [str(label) for label in coerce_array(payload) if label]

    def compare_prices(self, product_names: Sequence[str], store_names: Sequence[str]) -> List[PriceQuote]:
        payload = self._request(
            "POST",
            f"v1/{self.endpoints['comparator']}/",
            json={"productos": list(product_names), "supermercados": list(store_names)},
        )
        return [PriceQuote.from_dict(row) for row in coerce_array(payload) if isinstance(row, dict)]

    def list_categories(self, dataset: str = "consumidor") -> List[Dict[str, Any]]:
        path = "v1/grupos" if dataset == "consumidor" else "v1/subsectores"
        payload = self._request("GET", path, params={"dataset": dataset})
        return [_option_from_raw(row) for row in coerce_array(payload)]

    def list_products(
        self,
        dataset: Optional[str] = None,
        category_id: Optional[str] = None,
        q: Optional[str] = None,
        starts_with: Optional[str] = None,
        ordering: Optional[str] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> ProductPage:
        params: Dict[str, Any] = {
            "dataset": dataset,
            "q": q,
            "starts_with": starts_with,
            "ordering": ordering,
            "page": page,
            "page_size": page_size,
        }
        if category_id:
            params["grupo_id" if dataset in (None, "consumidor") else "subsector_id"] = category_id

        payload = self._request("GET", "v1/productos", params=params)
        rows = [row for row in coerce_array(payload) if isinstance(row, dict)]
        items = [
            Product(id=str(row.get("id")), name=str(row.get("nombre") or row.get("name") or ""))
            for row in rows
            if row.get("id") is not None
        ]
        count = payload.get("count") if isinstance(payload, dict) else None
        return ProductPage(items=items, count=count if isinstance(count, int) else len(items))

    def _options(self, product_id: str, kind: str, params: Dict[str, Any]) -> OptionList:
        payload = self._request("GET", f"v1/productos/{product_id}/{kind}", params=params)
        available_from = payload.get("desde") if isinstance(payload, dict) else None
        available_to = payload.get("hasta") if isinstance(payload, dict) else None
        return OptionList(
            options=[_option_from_raw(raw) for raw in coerce_array(payload, kind)],
            available_from=available_from,
            available_to=available_to,
        )

    def product_units(self, product_id: str, dataset: str = "consumidor") -> OptionList:
        return self._options(product_id, "unidades", {"dataset": dataset})

    def product_regions(self, product_id: str, unit: str, dataset: str = "consumidor") -> OptionList:
        return self._options(product_id, "regiones", {"dataset": dataset, "unidad": unit})

    def product_markets(self, product_id: str, unit: str, dataset: str = "mayorista") -> OptionList:
        return self._options(product_id, "mercados", {"dataset": dataset, "unidad": unit})

    def product_series(
        self,
        product_id: str,
        unit: str,
        dataset: str = "consumidor",
        desde: Optional[str] = None,
        hasta: Optional[str] = None,
        agg: str = "month",
        valor: str = "promedio",
        region_id: Optional[str] = None,
        mercado_id: Optional[str] = None,
    ) -> List[SeriesPoint]:
        params = {
            "dataset": dataset,
            "unidad": unit,
            "agg": agg,
            "valor": valor,
            "desde": desde,
            "hasta": hasta,
            "region_id": region_id,
            "mercado_id": mercado_id,
        }
        payload = self._request("GET", f"v1/productos/{product_id}/series", params=params)
        points = [_point_from_raw(raw) for raw in coerce_array(payload, "points")]
        return sorted(points, key=lambda point: point.date)
