"""Webhook delivery through the HTTP API, alone and racing the browser confirmation."""

import json

import pytest_asyncio

from storefront.routers import webhooks as webhooks_router
from storefront.services.payment_callbacks import handle_webhook_event
from storefront.services.reconciliation import TransitionOutcome
from tests.conftest import (
    auth_headers,
    coupon_counts,
    create_coupon,
    create_pending_order,
    create_product,
    create_user,
    order_state,
    sign_payment,
    sign_webhook,
    stock_of,
)

RZP_ORDER = "order_seed_0001"


def _event(event, *, order_id=RZP_ORDER, payment_id="pay_1", **payment):
    entity = {"id": payment_id, "order_id": order_id, "method": "upi", **payment}
    return json.dumps({"event": event, "payload": {"payment": {"entity": entity}}}).encode()


async def _deliver(client, body, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["X-Razorpay-Signature"] = signature or sign_webhook(body)
    return await client.post("/webhooks/razorpay", content=body, headers=headers)


@pytest_asyncio.fixture
async def pending(db):
    user = await create_user(db)
    product = await create_product(db, "Almonds", (("500g", 40000, 10),))
    await create_coupon(db, code="SAVE10")
    order = await create_pending_order(db, user, [(product, "500g", 2)], coupon_code="SAVE10")
    return user, product, order


class TestSignature:
    async def test_missing_signature(self, client, pending, db):
        _, _, order = pending
        resp = await _deliver(client, _event("payment.captured"), signature=False)
        assert resp.status_code == 400
        assert await order_state(db, order.id) == ("PENDING", "PENDING", False)

    async def test_invalid_signature(self, client, pending, db):
        _, product, order = pending
        resp = await _deliver(client, _event("payment.captured"), signature="f" * 64)
        assert resp.status_code == 401
        assert await order_state(db, order.id) == ("PENDING", "PENDING", False)
        assert await stock_of(db, product.id, "500g") == 10

    async def test_malformed_body(self, client):
        resp = await _deliver(client, b"not json")
        assert resp.status_code == 400


class TestEvents:
    async def test_captured_marks_paid(self, client, pending, db):
        _, product, order = pending

        resp = await _deliver(client, _event("payment.captured"))

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "event": "payment.captured",
            "handled": True,
            "outcome": "applied",
        }
        assert (await order_state(db, order.id))[:2] == ("PROCESSING", "SUCCESS")
        assert await stock_of(db, product.id, "500g") == 8
        assert await coupon_counts(db, "SAVE10") == 1

    async def test_order_paid_uses_order_entity(self, client, pending, db):
        _, _, order = pending
        body = json.dumps(
            {"event": "order.paid", "payload": {"order": {"entity": {"id": RZP_ORDER}}}}
        ).encode()

        resp = await _deliver(client, body)

        assert resp.json()["outcome"] == "applied"
        assert (await order_state(db, order.id))[:2] == ("PROCESSING", "SUCCESS")

    async def test_redelivery_applies_once(self, client, pending, db):
        _, product, _ = pending
        body = _event("payment.captured")

        await _deliver(client, body)
        again = await _deliver(client, body)

        assert again.json()["outcome"] == "already_applied"
        assert await stock_of(db, product.id, "500g") == 8
        assert await coupon_counts(db, "SAVE10") == 1

    async def test_failed_marks_failed(self, client, pending, db):
        _, product, order = pending

        resp = await _deliver(client, _event("payment.failed", error_description="Card declined"))

        assert resp.json()["outcome"] == "applied"
        assert await order_state(db, order.id) == ("FAILED", "FAILED", False)
        assert await stock_of(db, product.id, "500g") == 10

    async def test_unknown_event_acknowledged(self, client, pending, db):
        _, _, order = pending
        resp = await _deliver(client, _event("refund.created"))
        assert resp.status_code == 200
        assert resp.json()["handled"] is False
        assert await order_state(db, order.id) == ("PENDING", "PENDING", False)

    async def test_unknown_order_acknowledged(self, client):
        resp = await _deliver(client, _event("payment.captured", order_id="order_unknown"))
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "not_found"


class TestRacingChannels:
    def _confirm_body(self, order, payment_id="pay_1"):
        return {
            "order_id": order.id,
            "razorpay_order_id": order.razorpay_order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": sign_payment(order.razorpay_order_id, payment_id),
        }

    async def test_confirmation_then_webhook(self, client, pending, db):
        user, product, order = pending

        confirm = await client.post("/checkout/confirm", json=self._confirm_body(order), headers=auth_headers(user))
        hook = await _deliver(client, _event("payment.captured"))

        assert confirm.status_code == 200
        assert hook.json()["outcome"] == "already_applied"
        assert await stock_of(db, product.id, "500g") == 8
        assert await coupon_counts(db, "SAVE10") == 1

    async def test_webhook_then_confirmation(self, client, pending, db):
        user, product, order = pending

        await _deliver(client, _event("order.paid"))
        confirm = await client.post("/checkout/confirm", json=self._confirm_body(order), headers=auth_headers(user))

        assert confirm.status_code == 200
        assert confirm.json()["order"]["payment_status"] == "SUCCESS"
        assert await stock_of(db, product.id, "500g") == 8
        assert await coupon_counts(db, "SAVE10") == 1

    async def test_late_failure_cannot_undo_success(self, client, pending, db):
        user, product, order = pending

        await client.post("/checkout/confirm", json=self._confirm_body(order), headers=auth_headers(user))
        hook = await _deliver(client, _event("payment.failed", error_description="timeout"))

        assert hook.status_code == 200
        assert hook.json()["outcome"] == "rejected"
        assert await order_state(db, order.id) == ("PROCESSING", "SUCCESS", False)
        assert await stock_of(db, product.id, "500g") == 8
        assert await coupon_counts(db, "SAVE10") == 1

    async def test_late_success_after_failure_flagged(self, client, pending, db):
        _, product, order = pending

        await _deliver(client, _event("payment.failed"))
        hook = await _deliver(client, _event("payment.captured", payment_id="pay_2"))

        assert hook.json()["outcome"] == "rejected"
        assert await order_state(db, order.id) == ("FAILED", "FAILED", True)
        assert await stock_of(db, product.id, "500g") == 10
        assert await coupon_counts(db, "SAVE10") == 0


class TestHandleEvent:
    async def test_ignored_event_returns_result(self, db):
        res = await handle_webhook_event(db, {"event": "some.other"})
        assert res.event == "some.other"
        assert res.handled is False
        assert res.result is None

    async def test_missing_order_id(self, db):
        res = await handle_webhook_event(db, {"event": "payment.captured", "payload": {}})
        assert res.handled is False
        assert res.detail == {"reason": "missing_order_id"}

    async def test_captured_applies(self, db, pending):
        _, product, order = pending
        res = await handle_webhook_event(db, json.loads(_event("payment.captured")))
        assert res.handled is True
        assert res.result.outcome == TransitionOutcome.APPLIED
        assert await stock_of(db, product.id, "500g") == 8

    async def test_unexpected_error_returns_500(self, client, pending, monkeypatch):
        async def broken(db, payload):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(webhooks_router, "handle_webhook_event", broken)

        resp = await _deliver(client, _event("payment.captured"))

        assert resp.status_code == 500
        assert resp.json() == {"error": "database unavailable"}
