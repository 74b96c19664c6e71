"""
Thin NimbusPost client.

Every call returns a dict with a "success" flag instead of raising, mirroring
the vendor's own `status` field; failures are logged here.
"""
import logging
from typing import Optional

import requests

import settings

logger = logging.getLogger(__name__)

# NimbusPost status codes -> order status
WEBHOOK_STATUS_MAP = {
    "DEL": "delivered",
    "UD": "delivered",
    "IT": "shipped",
    "OT": "shipped",
    "RTO": "returned",
    "RTS": "returned",
}

DEFAULT_ITEM_WEIGHT = 0.5


class NimbusPostClient:
    def __init__(self, base_url: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None, api_key: Optional[str] = None):
        self.base_url = (base_url or settings.NIMBUS_POST_BASE_URL).rstrip("/")
        self.username = username if username is not None else settings.NIMBUS_POST_USERNAME
        self.password = password if password is not None else settings.NIMBUS_POST_PASSWORD
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        key = api_key if api_key is not None else settings.NIMBUS_POST_API_KEY
        if key:
            self.session.headers["Authorization"] = f"Bearer {key}"

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        logger.info("NimbusPost %s %s", method, path)
        response = self.session.request(method, url, timeout=settings.HTTP_TIMEOUT, **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {"status": False, "message": response.text[:200]}
        if response.status_code >= 400 or not body.get("status"):
            raise RuntimeError(body.get("message") or f"NimbusPost returned HTTP {response.status_code}")
        return body

    def authenticate(self) -> str:
        body = self._request("POST", "/users/login", json={"username": self.username, "password": self.password})
        token = body.get("data")
        self.session.headers["Authorization"] = f"Bearer {token}"
        logger.info("NimbusPost authentication successful")
        return token

    def create_shipment(self, order: dict) -> dict:
        address = order.get("shipping_address") or {}
        cod = order.get("payment_method") == "cod"
        payload = {
            "order_number": order["order_number"],
            "shipping_charges": order.get("shipping_cost", 0),
            "discount": order.get("discount", 0),
            "cod_charges": order.get("total", 0) if cod else 0,
            "payment_type": "cod" if cod else "prepaid",
            "order_amount": order.get("total", 0),
            "package_weight": sum(DEFAULT_ITEM_WEIGHT * i.get("quantity", 1) for i in order.get("items", [])),
            "package_length": 20,
            "package_breadth": 15,
            "package_height": 10,
            "request_auto_pickup": "yes",
            "consignee": {
                "name": address.get("name"),
                "address": address.get("address_line1"),
                "address_2": address.get("address_line2") or "",
                "city": address.get("city"),
                "state": address.get("state"),
                "pincode": address.get("pincode"),
                "phone": address.get("phone"),
                "email": address.get("email") or "",
            },
            "pickup": {"warehouse_name": settings.NIMBUS_POST_WAREHOUSE or "Main Warehouse"},
            "order_items": [
                {"name": i.get("name"), "qty": i.get("quantity"), "price": i.get("price"), "sku": str(i.get("product"))}
                for i in order.get("items", [])
            ],
            "courier_partner": "auto",
        }
        try:
            self.authenticate()
            data = self._request("POST", "/shipments", json=payload).get("data") or {}
        except (requests.RequestException, RuntimeError) as exc:
            logger.error("NimbusPost create shipment failed for %s: %s", order.get("order_number"), exc)
            return {"success": False, "error": str(exc) or "Failed to create shipping order"}
        awb = data.get("awb")
        return {
            "success": True,
            "nimbus_order_id": str(data.get("shipment_id")) if data.get("shipment_id") is not None else None,
            "tracking_number": awb,
            "courier_partner": data.get("courier_name"),
            "estimated_delivery": data.get("expected_delivery_date"),
            "tracking_url": settings.NIMBUS_TRACKING_URL.format(awb=awb) if awb else None,
        }

    def track_shipment(self, awb: str) -> dict:
        try:
            data = self._request("GET", f"/shipments/track/{awb}").get("data") or {}
        except (requests.RequestException, RuntimeError) as exc:
            logger.error("NimbusPost tracking failed for %s: %s", awb, exc)
            return {"success": False, "error": str(exc) or "Failed to track shipment"}
        return {
            "success": True,
            "tracking_number": data.get("awb", awb),
            "status": data.get("current_status"),
            "status_code": data.get("current_status_code"),
            "location": data.get("current_location"),
            "estimated_delivery": data.get("expected_delivery_date"),
            "actual_delivery": data.get("delivered_date"),
            "tracking_history": data.get("tracking_data") or [],
            "courier_partner": data.get("courier_name"),
        }

    def cancel_shipment(self, shipment_id: str, reason: str = "Customer request") -> dict:
        try:
            data = self._request("POST", f"/shipments/{shipment_id}/cancel", json={"reason": reason}).get("data") or {}
        except (requests.RequestException, RuntimeError) as exc:
            logger.error("NimbusPost cancel failed for %s: %s", shipment_id, exc)
            return {"success": False, "error": str(exc) or "Failed to cancel shipment"}
        return {"success": True, "refund_amount": data.get("refund_amount", 0)}


def parse_webhook(payload: dict) -> dict:
    return {
        "tracking_number": payload.get("awb"),
        "status": payload.get("current_status"),
        "status_code": payload.get("current_status_code"),
        "location": payload.get("current_location"),
        "delivered_date": payload.get("delivered_date"),
        "estimated_delivery": payload.get("expected_delivery_date"),
        "courier_partner": payload.get("courier_name"),
    }


def get_shipping_client() -> NimbusPostClient:
    return NimbusPostClient()
