from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.coupon import Coupon, CouponUsage
from storefront.models.product import Product, ProductVariant

log = structlog.get_logger(__name__)


class LedgerError(Exception):
    pass


class LedgerNotFound(LedgerError):
    pass


class InsufficientStock(LedgerError):
    def __init__(self, product_name: str, variant_label: str, available: int, requested: int):
        self.product_name = product_name
        self.variant_label = variant_label
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name} ({variant_label}). "
            f"Available: {available}, Required: {requested}"
        )


@dataclass(frozen=True)
class StockLine:
    product_id: int
    variant_label: str
    quantity: int


def _merge_lines(lines: Iterable[StockLine]) -> list[StockLine]:
    merged: dict[tuple[int, str], int] = {}
    for line in lines:
        key = (int(line.product_id), line.variant_label)
        merged[key] = merged.get(key, 0) + int(line.quantity)
    # stable lock order across concurrent transactions
    return [StockLine(pid, label, qty) for (pid, label), qty in sorted(merged.items())]


async def deduct_stock(db: AsyncSession, lines: Iterable[StockLine]) -> None:
    """
    Decrement variant stock for every line.

    Must run inside the caller's transaction. Raises on the first line that
    cannot be satisfied; the caller rolls back so no partial deduction survives.
    """
    for line in _merge_lines(lines):
        res = await db.execute(
            select(ProductVariant, Product.name)
            .join(Product, Product.id == ProductVariant.product_id)
            .where(
                ProductVariant.product_id == line.product_id,
                ProductVariant.label == line.variant_label,
            )
            .with_for_update(of=ProductVariant)
            .execution_options(populate_existing=True)
        )
        row = res.one_or_none()
        if row is None:
            raise LedgerNotFound(
                f"Variant not found for product {line.product_id} ({line.variant_label})."
            )

        variant, product_name = row
        if variant.stock_quantity < line.quantity:
            raise InsufficientStock(product_name, line.variant_label, variant.stock_quantity, line.quantity)

        upd = await db.execute(
            update(ProductVariant)
            .where(
                ProductVariant.id == variant.id,
                ProductVariant.stock_quantity >= line.quantity,
            )
            .values(stock_quantity=ProductVariant.stock_quantity - line.quantity)
            .execution_options(synchronize_session=False)
        )
        if upd.rowcount != 1:
            raise InsufficientStock(product_name, line.variant_label, variant.stock_quantity, line.quantity)

        log.info(
            "stock_deducted",
            product_id=line.product_id,
            variant=line.variant_label,
            quantity=line.quantity,
        )


async def record_coupon_usage(db: AsyncSession, *, coupon_code: str, user_id: int) -> bool:
    """
    Count one redemption of coupon_code by user_id.

    Limits are not enforced here; checkout checks them before the order exists.
    Returns False when the coupon no longer exists.
    """
    res = await db.execute(
        select(Coupon)
        .where(Coupon.code == coupon_code.upper())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    coupon = res.scalar_one_or_none()
    if coupon is None:
        log.warning("coupon_usage_skipped", coupon_code=coupon_code, reason="coupon_missing")
        return False

    await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .values(total_used=Coupon.total_used + 1)
        .execution_options(synchronize_session=False)
    )

    usage_res = await db.execute(
        select(CouponUsage)
        .where(CouponUsage.coupon_id == coupon.id, CouponUsage.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    usage = usage_res.scalar_one_or_none()

    if usage is None:
        db.add(CouponUsage(coupon_id=coupon.id, user_id=user_id, used_count=1))
        await db.flush()
    else:
        await db.execute(
            update(CouponUsage)
            .where(CouponUsage.id == usage.id)
            .values(used_count=CouponUsage.used_count + 1)
            .execution_options(synchronize_session=False)
        )

    log.info("coupon_usage_recorded", coupon_code=coupon.code, user_id=user_id)
    return True
