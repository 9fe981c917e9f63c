from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.schemas.webhooks import WebhookAck
from storefront.services.payment_callbacks import CallbackError, handle_webhook_event, parse_webhook
from storefront.services.signatures import verify_webhook_signature

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_HEADER = "X-Razorpay-Signature"


@router.post("/razorpay", response_model=WebhookAck)
async def razorpay_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    # verify against the exact bytes received, before any parsing
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    if not signature:
        log.warning("webhook_signature_missing")
        return JSONResponse(status_code=400, content={"error": "Missing webhook signature"})

    if not verify_webhook_signature(raw_body, signature):
        log.error("webhook_signature_invalid")
        return JSONResponse(status_code=401, content={"error": "Invalid webhook signature"})

    try:
        payload = parse_webhook(raw_body)
    except CallbackError as e:
        log.error("webhook_payload_invalid", error=str(e))
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})

    try:
        result = await handle_webhook_event(db, payload)
    except Exception as e:
        # 5xx makes the gateway retry
        log.exception("webhook_processing_error", webhook_event=payload.get("event"))
        return JSONResponse(status_code=500, content={"error": str(e) or "Internal server error"})

    return WebhookAck(
        success=True,
        event=result.event,
        handled=result.handled,
        outcome=result.result.outcome.value if result.result is not None else None,
    )
