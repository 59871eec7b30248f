# Overview: HTTP client for the storefront shipping calculator; failures are logged and reported as None.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

import httpx
from flask import current_app


class ShippingCalculator:
    """
    Thin client for POST {base_url}/shipping/calculate.

    Request:  {"items": [{"product_id", "quantity"}], "method": "air"|"sea"}
    Response: {"summary": {"total_shipping_cost": n}} or the same wrapped in
              {"data": {...}}.

    calculate() never raises: an unreachable backend, a non-2xx answer or an
    unreadable body all yield None.
    """

    def __init__(self, base_url: str, *, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config) -> "ShippingCalculator":
        return cls(
            config.get("SHIPPING_BACKEND_URL", "http://127.0.0.1:8080"),
            timeout=float(config.get("SHIPPING_BACKEND_TIMEOUT", 5)),
        )

    def calculate(self, items: list[dict], method: str) -> Decimal | None:
        payload = {
            "items": [
                {"product_id": item["product_id"], "quantity": item["quantity"]}
                for item in items
            ],
            "method": method,
        }

        try:
            with httpx.Client(timeout=httpx.Timeout(self.timeout), transport=self._transport) as client:
                resp = client.post(f"{self.base_url}/shipping/calculate", json=payload)
                resp.raise_for_status()
                body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            current_app.logger.warning("Shipping calculator request failed (%s): %s", method, e)
            return None

        summary = None
        if isinstance(body, dict):
            summary = body.get("summary")
            if summary is None and isinstance(body.get("data"), dict):
                summary = body["data"].get("summary")

        if not isinstance(summary, dict) or summary.get("total_shipping_cost") is None:
            current_app.logger.warning("Shipping calculator returned no summary (%s)", method)
            return None

        try:
            return Decimal(str(summary["total_shipping_cost"])).quantize(Decimal("0.01"))
        except InvalidOperation:
            current_app.logger.warning("Shipping calculator returned a non-numeric cost (%s)", method)
            return None
