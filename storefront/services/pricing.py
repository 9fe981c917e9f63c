from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.models.coupon import Coupon, CouponUsage, DiscountType


class CouponError(Exception):
    pass


@dataclass(frozen=True)
class ShippingRule:
    # None disables shipping charges entirely
    charge_cents: int | None
    # None means there is no free-shipping threshold
    free_shipping_min_order_cents: int | None


def format_money(cents: int) -> str:
    return f"{settings.CURRENCY} {Decimal(cents) / 100:.2f}"


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def compute_discount(coupon: Coupon, subtotal_cents: int) -> int:
    if subtotal_cents <= 0:
        return 0

    if coupon.type == DiscountType.PERCENTAGE.value:
        raw = (Decimal(subtotal_cents) * Decimal(coupon.value) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        discount = int(raw)
        if coupon.max_discount_cents and discount > coupon.max_discount_cents:
            discount = int(coupon.max_discount_cents)
    else:
        discount = int(coupon.value)

    return max(0, min(discount, subtotal_cents))


def compute_shipping(rule: ShippingRule, order_total_cents: int) -> int:
    if rule.charge_cents is None:
        return 0
    if rule.free_shipping_min_order_cents is not None and order_total_cents >= rule.free_shipping_min_order_cents:
        return 0
    return int(rule.charge_cents)


async def validate_coupon(
    db: AsyncSession,
    *,
    code: str,
    subtotal_cents: int,
    user_id: int | None,
    now: datetime | None = None,
) -> tuple[Coupon, int]:
    """
    Check that a coupon may be applied right now and price it.

    Usage limits are read, not reserved: two checkouts racing on the last
    redemption can both pass.
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        raise CouponError("Invalid coupon code")

    res = await db.execute(
        select(Coupon).where(Coupon.code == normalized, Coupon.is_active.is_(True))
    )
    coupon = res.scalar_one_or_none()
    if coupon is None:
        raise CouponError("Invalid coupon code")

    now = now or datetime.now(timezone.utc)
    if coupon.expires_at is not None and _as_utc(coupon.expires_at) < now:
        raise CouponError("This coupon has expired")

    if coupon.min_order_value_cents and subtotal_cents < coupon.min_order_value_cents:
        raise CouponError(
            f"Minimum order value of {format_money(coupon.min_order_value_cents)} required for this coupon"
        )

    if coupon.global_usage_limit and coupon.total_used >= coupon.global_usage_limit:
        raise CouponError("This coupon has reached its usage limit")

    if coupon.per_user_limit and user_id is not None:
        usage_res = await db.execute(
            select(CouponUsage.used_count).where(
                CouponUsage.coupon_id == coupon.id,
                CouponUsage.user_id == user_id,
            )
        )
        used = usage_res.scalar_one_or_none() or 0
        if used >= coupon.per_user_limit:
            times = "time" if coupon.per_user_limit == 1 else "times"
            raise CouponError(f"You have already used this coupon {coupon.per_user_limit} {times}")

    return coupon, compute_discount(coupon, subtotal_cents)
