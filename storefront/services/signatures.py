"""
HMAC-SHA256 checks for payment gateway callbacks.

Both checks are pure: they never touch the database. A False result is an
authentication failure and must never be treated as a business error.
"""
from __future__ import annotations

import hashlib
import hmac

from storefront.core.config import settings


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: str | None) -> bool:
    if not provided:
        return False
    # exact, case-sensitive hex compare
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def verify_payment_signature(
    razorpay_order_id: str,
    razorpay_payment_id: str,
    signature: str | None,
    *,
    secret: str | None = None,
) -> bool:
    """Checkout confirmation: HMAC over "<order_id>|<payment_id>" with the key secret."""
    key = settings.RAZORPAY_KEY_SECRET if secret is None else secret
    if not key:
        return False
    message = f"{razorpay_order_id}|{razorpay_payment_id}".encode("utf-8")
    return _matches(_hmac_hex(key, message), signature)


def verify_webhook_signature(raw_body: bytes | str, signature: str | None, secret: str | None = None) -> bool:
    """
    Webhook: HMAC over the raw request body with the webhook secret.

    raw_body must be exactly what was received; re-serialised JSON will not match.
    """
    key = settings.RAZORPAY_WEBHOOK_SECRET if secret is None else secret
    if not key:
        return False
    body = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
    return _matches(_hmac_hex(key, body), signature)
