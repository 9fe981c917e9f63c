"""
Order payment state machine.

    (PENDING, PENDING) --mark_order_paid-->   (PROCESSING, SUCCESS)
    (PENDING, PENDING) --mark_order_failed--> (FAILED, FAILED)

Both outcomes are terminal. Every transition is a conditional UPDATE on the
order row guarded by payment_status = PENDING, so concurrent callers can
never both apply: the loser sees rowcount 0 and reports what won instead.
Stock and coupon ledgers move only inside the SUCCESS transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.order_item import OrderItem
from storefront.services.ledger import LedgerError, StockLine, deduct_stock, record_coupon_usage
from storefront.services.revalidation import order_paths, schedule_revalidation

log = structlog.get_logger(__name__)


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    # the order already reached the opposite terminal state
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    # ledger failure; the transaction was rolled back
    ABORTED = "aborted"


@dataclass
class TransitionResult:
    outcome: TransitionOutcome
    order: Order | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome in (TransitionOutcome.APPLIED, TransitionOutcome.ALREADY_APPLIED)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def load_order(
    db: AsyncSession,
    *,
    order_id: int | None = None,
    razorpay_order_id: str | None = None,
) -> Order | None:
    if order_id is None and razorpay_order_id is None:
        raise ValueError("order_id or razorpay_order_id is required")

    stmt = select(Order).execution_options(populate_existing=True)
    if order_id is not None:
        stmt = stmt.where(Order.id == order_id)
    else:
        stmt = stmt.where(Order.razorpay_order_id == razorpay_order_id)

    res = await db.execute(stmt)
    return res.scalar_one_or_none()


async def _flag_late_success(
    db: AsyncSession,
    *,
    order: Order,
    razorpay_payment_id: str | None,
    channel: str,
) -> None:
    order_pk = order.id
    meta = dict(order.payment_meta or {})
    meta["late_success"] = {
        "razorpay_payment_id": razorpay_payment_id,
        "channel": channel,
        "received_at": _now_utc().isoformat(),
    }

    try:
        await db.execute(
            update(Order)
            .where(Order.id == order_pk, Order.payment_status == PaymentStatus.FAILED.value)
            .values(needs_review=True, payment_meta=meta)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.error(
        "needs_manual_review",
        reason="success_after_failure",
        order_id=order_pk,
        razorpay_payment_id=razorpay_payment_id,
        channel=channel,
    )


async def mark_order_paid(
    db: AsyncSession,
    *,
    order_id: int | None = None,
    razorpay_order_id: str | None = None,
    razorpay_payment_id: str | None,
    payment_method: str = "RAZORPAY",
    payment_meta: dict | None = None,
    channel: str,
) -> TransitionResult:
    """
    Drive an order to (PROCESSING, SUCCESS), deducting stock and counting the coupon.

    Safe to call any number of times from any channel. Ledger failures roll
    everything back and come back as ABORTED; other exceptions propagate
    after rollback.
    """
    order = await load_order(db, order_id=order_id, razorpay_order_id=razorpay_order_id)
    if order is None:
        log.warning("order_not_found", channel=channel, order_id=order_id, razorpay_order_id=razorpay_order_id)
        return TransitionResult(TransitionOutcome.NOT_FOUND, message="Order not found")

    order_pk = order.id

    if order.payment_status == PaymentStatus.SUCCESS.value:
        log.info("order_already_paid", order_id=order_pk, channel=channel)
        return TransitionResult(TransitionOutcome.ALREADY_APPLIED, order, "Order already processed")

    if order.payment_status == PaymentStatus.FAILED.value:
        await _flag_late_success(db, order=order, razorpay_payment_id=razorpay_payment_id, channel=channel)
        return TransitionResult(
            TransitionOutcome.REJECTED,
            await load_order(db, order_id=order_pk),
            "Order was already marked failed; flagged for review",
        )

    lines = [StockLine(it.product_id, it.variant_label, it.quantity) for it in order.items]
    coupon_code = order.coupon_code
    user_id = order.user_id

    try:
        res = await db.execute(
            update(Order)
            .where(Order.id == order_pk, Order.payment_status == PaymentStatus.PENDING.value)
            .values(
                status=OrderStatus.PROCESSING.value,
                payment_status=PaymentStatus.SUCCESS.value,
                razorpay_payment_id=razorpay_payment_id or order.razorpay_payment_id,
                payment_captured_at=_now_utc(),
                payment_method=payment_method,
                payment_meta=payment_meta or {},
            )
            .execution_options(synchronize_session=False)
        )

        if res.rowcount != 1:
            # another channel finished first
            await db.rollback()
            current = await load_order(db, order_id=order_pk)
            if current is not None and current.payment_status == PaymentStatus.SUCCESS.value:
                log.info("order_already_paid", order_id=order_pk, channel=channel, raced=True)
                return TransitionResult(TransitionOutcome.ALREADY_APPLIED, current, "Order already processed")
            if current is not None and current.payment_status == PaymentStatus.FAILED.value:
                await _flag_late_success(db, order=current, razorpay_payment_id=razorpay_payment_id, channel=channel)
                return TransitionResult(
                    TransitionOutcome.REJECTED,
                    await load_order(db, order_id=order_pk),
                    "Order was already marked failed; flagged for review",
                )
            return TransitionResult(TransitionOutcome.NOT_FOUND, message="Order not found")

        await deduct_stock(db, lines)

        if coupon_code:
            await record_coupon_usage(db, coupon_code=coupon_code, user_id=user_id)

        await db.commit()

    except LedgerError as e:
        await db.rollback()
        log.warning("order_payment_aborted", order_id=order_pk, channel=channel, error=str(e))
        return TransitionResult(TransitionOutcome.ABORTED, await load_order(db, order_id=order_pk), str(e))
    except Exception:
        await db.rollback()
        raise

    paid = await load_order(db, order_id=order_pk)
    log.info(
        "order_marked_paid",
        order_id=order_pk,
        order_number=paid.order_number if paid else None,
        razorpay_payment_id=razorpay_payment_id,
        channel=channel,
    )
    schedule_revalidation(order_paths(order_pk))
    return TransitionResult(TransitionOutcome.APPLIED, paid, "Payment confirmed successfully")


async def mark_order_failed(
    db: AsyncSession,
    *,
    order_id: int | None = None,
    razorpay_order_id: str | None = None,
    reason: str,
    payment_meta: dict | None = None,
    needs_review: bool = False,
    channel: str,
) -> TransitionResult:
    """Drive an order to (FAILED, FAILED). Never overwrites a successful payment."""
    order = await load_order(db, order_id=order_id, razorpay_order_id=razorpay_order_id)
    if order is None:
        log.warning("order_not_found", channel=channel, order_id=order_id, razorpay_order_id=razorpay_order_id)
        return TransitionResult(TransitionOutcome.NOT_FOUND, message="Order not found")

    order_pk = order.id

    if order.payment_status == PaymentStatus.SUCCESS.value:
        log.warning("failure_ignored_for_paid_order", order_id=order_pk, channel=channel, reason=reason)
        return TransitionResult(TransitionOutcome.REJECTED, order, "Order is already paid")

    if order.payment_status == PaymentStatus.FAILED.value:
        log.info("order_already_failed", order_id=order_pk, channel=channel)
        return TransitionResult(TransitionOutcome.ALREADY_APPLIED, order, "Order already marked failed")

    meta = {"error": reason}
    if payment_meta:
        meta["payload"] = payment_meta

    try:
        res = await db.execute(
            update(Order)
            .where(Order.id == order_pk, Order.payment_status == PaymentStatus.PENDING.value)
            .values(
                status=OrderStatus.FAILED.value,
                payment_status=PaymentStatus.FAILED.value,
                payment_meta=meta,
                needs_review=needs_review,
            )
            .execution_options(synchronize_session=False)
        )

        if res.rowcount != 1:
            await db.rollback()
            current = await load_order(db, order_id=order_pk)
            if current is not None and current.payment_status == PaymentStatus.SUCCESS.value:
                log.warning("failure_ignored_for_paid_order", order_id=order_pk, channel=channel, raced=True)
                return TransitionResult(TransitionOutcome.REJECTED, current, "Order is already paid")
            return TransitionResult(TransitionOutcome.ALREADY_APPLIED, current, "Order already marked failed")

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    failed = await load_order(db, order_id=order_pk)
    log.info("order_marked_failed", order_id=order_pk, channel=channel, reason=reason, needs_review=needs_review)
    schedule_revalidation(order_paths(order_pk))
    return TransitionResult(TransitionOutcome.APPLIED, failed, "Order marked as failed")


async def abandon_pending_order(db: AsyncSession, *, order_id: int, user_id: int) -> TransitionResult:
    """
    Delete an order the customer walked away from before paying.

    Only (PENDING, PENDING) orders go; anything that saw a payment attempt
    is kept for support.
    """
    order = await load_order(db, order_id=order_id)
    if order is None or order.user_id != user_id:
        return TransitionResult(TransitionOutcome.NOT_FOUND, message="Order not found")

    if order.status != OrderStatus.PENDING.value:
        return TransitionResult(TransitionOutcome.REJECTED, order, f"Order is {order.status}, not deleted")

    if order.payment_status != PaymentStatus.PENDING.value:
        return TransitionResult(
            TransitionOutcome.REJECTED,
            order,
            f"Payment was attempted ({order.payment_status}), order kept for records",
        )

    try:
        await db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
        res = await db.execute(
            delete(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING.value,
                Order.payment_status == PaymentStatus.PENDING.value,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            await db.rollback()
            current = await load_order(db, order_id=order_id)
            status = current.payment_status if current is not None else "unknown"
            return TransitionResult(
                TransitionOutcome.REJECTED,
                current,
                f"Payment was attempted ({status}), order kept for records",
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    db.expunge(order)
    log.info("pending_order_deleted", order_id=order_id, user_id=user_id)
    return TransitionResult(TransitionOutcome.APPLIED, None, "Pending order deleted successfully")
