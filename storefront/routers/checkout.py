from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import get_current_user
from storefront.integrations.razorpay_client import PaymentGatewayError, RazorpayClient, get_payment_client
from storefront.models.user import User
from storefront.schemas.checkout import (
    AbandonIn,
    AbandonOut,
    CheckoutIn,
    CheckoutOut,
    ConfirmIn,
    ConfirmOut,
)
from storefront.schemas.orders import OrderOut
from storefront.services.checkout import CheckoutError, initiate_order
from storefront.services.order_numbers import OrderNumberError
from storefront.services.payment_callbacks import CallbackError, confirm_payment
from storefront.services.pricing import CouponError
from storefront.services.reconciliation import TransitionOutcome, abandon_pending_order

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/orders", response_model=CheckoutOut, status_code=201)
async def create_checkout_order(
    payload: CheckoutIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: RazorpayClient = Depends(get_payment_client),
) -> CheckoutOut:
    try:
        order = await initiate_order(
            db,
            user=current_user,
            items=payload.items,
            shipping_address=payload.shipping_address,
            billing_address=payload.billing_address,
            coupon_code=payload.coupon_code,
            gateway=gateway,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentGatewayError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except OrderNumberError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return CheckoutOut(
        order_id=order.id,
        order_number=order.order_number,
        razorpay_order_id=order.razorpay_order_id,
        key=gateway.public_key,
        amount_cents=order.total_cents,
        currency=order.currency,
        subtotal_cents=order.subtotal_cents,
        discount_cents=order.discount_cents,
        shipping_cents=order.shipping_cents,
    )


@router.post("/confirm", response_model=ConfirmOut)
async def confirm_checkout_payment(
    payload: ConfirmIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConfirmOut:
    try:
        outcome = await confirm_payment(
            db,
            user=current_user,
            order_id=payload.order_id,
            razorpay_order_id=payload.razorpay_order_id,
            razorpay_payment_id=payload.razorpay_payment_id,
            razorpay_signature=payload.razorpay_signature,
        )
    except CallbackError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception:
        log.exception("payment_confirmation_error", order_id=payload.order_id)
        raise HTTPException(status_code=500, detail="Payment confirmation failed")

    result = outcome.result

    if not outcome.verified:
        raise HTTPException(status_code=400, detail="Payment verification failed")

    if result.outcome == TransitionOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.message)
    if result.outcome in (TransitionOutcome.REJECTED, TransitionOutcome.ABORTED):
        raise HTTPException(status_code=409, detail=result.message)

    return ConfirmOut(
        success=True,
        message=result.message,
        order=OrderOut.model_validate(result.order) if result.order is not None else None,
    )


@router.post("/abandon", response_model=AbandonOut)
async def abandon_checkout(
    payload: AbandonIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AbandonOut:
    result = await abandon_pending_order(db, order_id=payload.order_id, user_id=current_user.id)

    if result.outcome == TransitionOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.message)

    deleted = result.outcome == TransitionOutcome.APPLIED
    return AbandonOut(
        success=deleted,
        message=result.message,
        should_delete=deleted,
        status=result.order.status if result.order is not None else None,
        payment_status=result.order.payment_status if result.order is not None else None,
    )
