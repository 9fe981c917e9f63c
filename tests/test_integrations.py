"""Outbound HTTP: gateway order creation and view revalidation."""

import json

import httpx
import pytest

from storefront.integrations import razorpay_client
from storefront.integrations.razorpay_client import PaymentGatewayError, RazorpayClient
from storefront.services import revalidation

_RealAsyncClient = httpx.AsyncClient


def _patch_transport(monkeypatch, handler):
    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _RealAsyncClient(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)


class TestRazorpayClient:
    async def test_create_order(self, monkeypatch):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "order_live_1", "status": "created"})

        _patch_transport(monkeypatch, handler)

        order_id = await RazorpayClient().create_order(
            amount_cents=32000, currency="INR", receipt="ORD-20260314-001", notes={"user_id": "1"}
        )

        assert order_id == "order_live_1"
        assert seen[0].url.path == "/v1/orders"
        assert seen[0].headers["authorization"].startswith("Basic ")
        assert json.loads(seen[0].content) == {
            "amount": 32000,
            "currency": "INR",
            "receipt": "ORD-20260314-001",
            "notes": {"user_id": "1"},
        }

    async def test_api_error(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(400, json={"error": "bad"}))
        with pytest.raises(PaymentGatewayError, match="400"):
            await RazorpayClient().create_order(amount_cents=100, currency="INR", receipt="r")

    async def test_missing_id(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(200, json={}))
        with pytest.raises(PaymentGatewayError, match="missing order id"):
            await RazorpayClient().create_order(amount_cents=100, currency="INR", receipt="r")

    async def test_unreachable(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        _patch_transport(monkeypatch, handler)
        with pytest.raises(PaymentGatewayError, match="unreachable"):
            await RazorpayClient().create_order(amount_cents=100, currency="INR", receipt="r")

    def test_public_key(self):
        assert razorpay_client.get_payment_client().public_key == "rzp_test_key"


class TestRevalidation:
    async def test_posts_paths_to_every_url(self, monkeypatch):
        seen = []

        def handler(request):
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200)

        _patch_transport(monkeypatch, handler)
        monkeypatch.setattr(revalidation.settings, "REVALIDATE_URLS", "http://a/revalidate, http://b/revalidate")

        await revalidation.revalidate(revalidation.order_paths(7))

        assert sorted(url for url, _ in seen) == ["http://a/revalidate", "http://b/revalidate"]
        assert "/account/orders/7" in seen[0][1]["paths"]

    async def test_failures_are_swallowed(self, monkeypatch):
        def handler(request):
            if request.url.host == "down":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(500)

        _patch_transport(monkeypatch, handler)
        monkeypatch.setattr(revalidation.settings, "REVALIDATE_URLS", "http://down/x,http://up/x")

        await revalidation.revalidate(["/products"])

    def test_disabled_without_urls(self, monkeypatch):
        monkeypatch.setattr(revalidation.settings, "REVALIDATE_URLS", "")
        revalidation.schedule_revalidation(["/products"])
        assert not revalidation._pending
