import httpx
import structlog

from storefront.core.config import settings

log = structlog.get_logger(__name__)


class PaymentGatewayError(Exception):
    pass


class RazorpayClient:
    def __init__(self):
        self.base_url = settings.RAZORPAY_API_BASE_URL.rstrip("/")
        self.key_id = settings.RAZORPAY_KEY_ID
        self.key_secret = settings.RAZORPAY_KEY_SECRET
        self.timeout = settings.RAZORPAY_TIMEOUT_SECONDS

    @property
    def public_key(self) -> str:
        return self.key_id

    async def create_order(
        self,
        *,
        amount_cents: int,
        currency: str,
        receipt: str,
        notes: dict | None = None,
    ) -> str:
        """Create a gateway order for amount_cents and return its id."""
        payload = {
            "amount": int(amount_cents),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(
                    f"{self.base_url}/v1/orders",
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                )
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Razorpay unreachable: {e}") from e

        if r.status_code >= 300:
            log.error("razorpay_order_create_failed", status=r.status_code, body=r.text[:500], receipt=receipt)
            raise PaymentGatewayError(f"Razorpay API error: {r.status_code}")

        order_id = r.json().get("id")
        if not order_id:
            raise PaymentGatewayError("Razorpay response missing order id")

        log.info("razorpay_order_created", razorpay_order_id=order_id, receipt=receipt, amount=amount_cents)
        return order_id


def get_payment_client() -> RazorpayClient:
    return RazorpayClient()
