"""Thin Razorpay client: create an order and check signatures."""
import hashlib
import hmac
import logging
from typing import Optional

import requests

import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None,
                 webhook_secret: Optional[str] = None, base_url: Optional[str] = None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        self.base_url = (base_url or settings.RAZORPAY_BASE_URL).rstrip("/")

    def create_order(self, amount: float, receipt: str, notes: Optional[dict] = None) -> dict:
        """Create a gateway order for `amount` rupees; Razorpay takes paise."""
        if not self.key_id or not self.key_secret:
            raise PaymentGatewayError("Razorpay credentials are not configured")
        payload = {
            "amount": int(round(amount * 100)),
            "currency": settings.CURRENCY,
            "receipt": receipt[:40],
            "notes": notes or {},
        }
        try:
            response = requests.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=settings.HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.error("Razorpay order request failed: %s", exc)
            raise PaymentGatewayError("Payment gateway is unreachable") from exc
        if response.status_code >= 400:
            logger.error("Razorpay rejected order %s: %s", receipt, response.text)
            try:
                message = response.json().get("error", {}).get("description")
            except ValueError:
                message = None
            raise PaymentGatewayError(message or "Failed to create payment order")
        data = response.json()
        logger.info("Razorpay order %s created for %s", data.get("id"), receipt)
        return {
            "order_id": data.get("id"),
            "amount": data.get("amount", payload["amount"]),
            "currency": data.get("currency", payload["currency"]),
            "key_id": self.key_id,
        }

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret or not signature:
            return False
        expected = _sign(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret or not signature:
            return False
        return hmac.compare_digest(_sign(self.webhook_secret, body), signature)


def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway()
