"""
The two channels that report a payment outcome.

A: the browser posts the gateway's signed handoff after checkout.
B: the gateway posts a webhook.

They may arrive in any order, twice, or not at all; both funnel into
services.reconciliation, which is idempotent on the stored order state.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.user import User
from storefront.services.reconciliation import (
    TransitionOutcome,
    TransitionResult,
    load_order,
    mark_order_failed,
    mark_order_paid,
)
from storefront.services.signatures import verify_payment_signature

log = structlog.get_logger(__name__)

SUCCESS_EVENTS = frozenset({"payment.captured", "order.paid"})
FAILURE_EVENTS = frozenset({"payment.failed"})


class CallbackError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ConfirmationResult:
    verified: bool
    result: TransitionResult


@dataclass
class WebhookResult:
    event: str
    handled: bool
    result: TransitionResult | None = None
    detail: dict[str, Any] = field(default_factory=dict)


async def _fail_for_review(
    db: AsyncSession,
    *,
    order_id: int | None = None,
    razorpay_order_id: str | None = None,
    reason: str,
    channel: str,
) -> None:
    """Best effort: park an order the gateway says is paid but we could not settle."""
    try:
        res = await mark_order_failed(
            db,
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            reason=reason,
            needs_review=True,
            channel=channel,
        )
    except Exception:
        log.exception(
            "order_fail_fallback_failed",
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            channel=channel,
        )
        return

    log.error(
        "needs_manual_review",
        reason=reason,
        order_id=order_id,
        razorpay_order_id=razorpay_order_id,
        channel=channel,
        fallback=res.outcome.value,
    )


async def _settle_success(
    db: AsyncSession,
    *,
    order_id: int | None = None,
    razorpay_order_id: str | None = None,
    razorpay_payment_id: str | None,
    payment_method: str,
    payment_meta: dict,
    channel: str,
) -> TransitionResult:
    try:
        result = await mark_order_paid(
            db,
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            razorpay_payment_id=razorpay_payment_id,
            payment_method=payment_method,
            payment_meta=payment_meta,
            channel=channel,
        )
    except Exception as e:
        log.exception("order_payment_error", order_id=order_id, razorpay_order_id=razorpay_order_id, channel=channel)
        await _fail_for_review(
            db,
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            reason=str(e) or e.__class__.__name__,
            channel=channel,
        )
        raise

    if result.outcome == TransitionOutcome.ABORTED:
        await _fail_for_review(
            db,
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            reason=result.message,
            channel=channel,
        )
        result.order = await load_order(db, order_id=order_id, razorpay_order_id=razorpay_order_id)

    return result


async def confirm_payment(
    db: AsyncSession,
    *,
    user: User,
    order_id: int,
    razorpay_order_id: str,
    razorpay_payment_id: str,
    razorpay_signature: str,
) -> ConfirmationResult:
    """Entry point A: the customer's browser relays the gateway handoff."""
    order = await load_order(db, order_id=order_id)
    if order is None:
        raise CallbackError("Order not found", status_code=404)
    if order.user_id != user.id:
        raise CallbackError("Not allowed.", status_code=403)

    verified = (
        razorpay_order_id == order.razorpay_order_id
        and verify_payment_signature(razorpay_order_id, razorpay_payment_id, razorpay_signature)
    )

    if not verified:
        log.warning(
            "payment_signature_invalid",
            order_id=order_id,
            razorpay_order_id=razorpay_order_id,
            channel="confirmation",
        )
        result = await mark_order_failed(
            db,
            order_id=order_id,
            reason="Invalid payment signature",
            channel="confirmation",
        )
        return ConfirmationResult(verified=False, result=result)

    result = await _settle_success(
        db,
        order_id=order_id,
        razorpay_payment_id=razorpay_payment_id,
        payment_method="RAZORPAY",
        payment_meta={"channel": "confirmation", "razorpay_payment_id": razorpay_payment_id},
        channel="confirmation",
    )
    return ConfirmationResult(verified=True, result=result)


def parse_webhook(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as e:
        raise CallbackError("Malformed webhook payload") from e
    if not isinstance(payload, dict):
        raise CallbackError("Malformed webhook payload")
    return payload


def _entity(payload: dict, name: str) -> dict:
    node = (payload.get("payload") or {}).get(name) or {}
    entity = node.get("entity") if isinstance(node, dict) else None
    return entity if isinstance(entity, dict) else {}


async def handle_webhook_event(db: AsyncSession, payload: dict) -> WebhookResult:
    """
    Entry point B: act on an already signature-verified webhook payload.

    Unknown events and unknown orders are logged and acknowledged so the
    gateway stops retrying them.
    """
    event = str(payload.get("event") or "")
    payment = _entity(payload, "payment")
    order_entity = _entity(payload, "order")

    log.info("webhook_received", webhook_event=event)

    if event not in SUCCESS_EVENTS and event not in FAILURE_EVENTS:
        log.info("webhook_ignored", webhook_event=event)
        return WebhookResult(event=event, handled=False)

    razorpay_order_id = payment.get("order_id") or order_entity.get("id")
    if not razorpay_order_id:
        log.error("webhook_missing_order_id", webhook_event=event)
        return WebhookResult(event=event, handled=False, detail={"reason": "missing_order_id"})

    if event in SUCCESS_EVENTS:
        result = await _settle_success(
            db,
            razorpay_order_id=razorpay_order_id,
            razorpay_payment_id=payment.get("id"),
            payment_method=(payment.get("method") or "RAZORPAY"),
            payment_meta=payment,
            channel="webhook",
        )
    else:
        reason = payment.get("error_description") or "Payment failed"
        result = await mark_order_failed(
            db,
            razorpay_order_id=razorpay_order_id,
            reason=reason,
            payment_meta=payment,
            channel="webhook",
        )

    log.info(
        "webhook_processed",
        webhook_event=event,
        razorpay_order_id=razorpay_order_id,
        outcome=result.outcome.value,
    )
    return WebhookResult(event=event, handled=True, result=result)
