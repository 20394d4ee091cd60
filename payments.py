"""
Razorpay glue: gateway order creation and checkout signature checks.

Credentials come from RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET only.
"""
import hashlib
import hmac
import logging
import time

import config

logger = logging.getLogger(__name__)


class PaymentGatewayNotConfigured(Exception):
    pass


def _require_secret() -> str:
    if not config.RAZORPAY_KEY_SECRET:
        raise PaymentGatewayNotConfigured("Payment gateway is not configured")
    return config.RAZORPAY_KEY_SECRET


def gateway_client():
    secret = _require_secret()
    if not config.RAZORPAY_KEY_ID:
        raise PaymentGatewayNotConfigured("Payment gateway is not configured")

    import razorpay
    return razorpay.Client(auth=(config.RAZORPAY_KEY_ID, secret))


def to_subunits(amount: float) -> int:
    """Rupees to paise."""
    return int(round(amount * 100))


def create_gateway_order(amount: float, currency: str = "INR") -> dict:
    options = {
        "amount": to_subunits(amount),
        "currency": currency,
        "receipt": f"receipt_{int(time.time() * 1000)}",
        "payment_capture": 1,
    }
    response = gateway_client().order.create(data=options)
    logger.info("Created gateway order %s for %s %s", response.get("id"), options["amount"], currency)
    return response


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    expected = payment_signature(order_id, payment_id, _require_secret())
    return hmac.compare_digest(expected.encode(), signature.encode())
