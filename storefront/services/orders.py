from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.services.reconciliation import load_order
from storefront.services.revalidation import order_paths, schedule_revalidation

log = structlog.get_logger(__name__)

FULFILLMENT_STATUSES = frozenset(
    {OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}
)


class OrdersError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


async def list_user_orders(
    db: AsyncSession,
    *,
    user_id: int,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    filters = [Order.user_id == user_id]

    if status is not None:
        filters.append(Order.status == status)
    if payment_status is not None:
        filters.append(Order.payment_status == payment_status)

    where_clause = and_(*filters)

    total_res = await db.execute(select(func.count()).select_from(Order).where(where_clause))
    total = int(total_res.scalar_one())

    res = await db.execute(
        select(Order)
        .where(where_clause)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    orders = res.scalars().all()

    return {"items": list(orders), "limit": limit, "offset": offset, "total": total}


async def get_user_order(db: AsyncSession, *, order_id: int, user_id: int) -> Order:
    order = await load_order(db, order_id=order_id)
    # FAILED orders stay visible to their owner
    if order is None or order.user_id != user_id:
        raise OrdersError("Order not found.", status_code=404)
    return order


async def update_fulfillment(
    db: AsyncSession,
    *,
    order_id: int,
    status: str,
    tracking_id: str | None,
    actor_user_id: int,
) -> Order:
    """
    Move a paid order through shipping. Financial fields and ledgers are
    never touched here.
    """
    if status not in FULFILLMENT_STATUSES:
        raise OrdersError(f"Unsupported fulfillment status: {status}")

    values: dict = {"status": status}
    if tracking_id is not None:
        values["tracking_id"] = tracking_id

    try:
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PaymentStatus.SUCCESS.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            await db.rollback()
            current = await load_order(db, order_id=order_id)
            if current is None:
                raise OrdersError("Order not found.", status_code=404)
            raise OrdersError(
                f"Order payment is {current.payment_status}; only paid orders can be fulfilled.",
                status_code=409,
            )
        await db.commit()
    except OrdersError:
        raise
    except Exception:
        await db.rollback()
        raise

    order = await load_order(db, order_id=order_id)
    log.info(
        "order_fulfillment_updated",
        order_id=order_id,
        status=status,
        tracking_id=tracking_id,
        actor_user_id=actor_user_id,
    )
    schedule_revalidation(order_paths(order_id))
    return order
