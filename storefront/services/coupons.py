# storefront/services/coupons.py
from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.coupon import Coupon, CouponUsage, DiscountType

log = structlog.get_logger(__name__)

# admin-editable columns; total_used belongs to the usage ledger only
_EDITABLE = (
    "type",
    "value",
    "min_order_value_cents",
    "max_discount_cents",
    "expires_at",
    "global_usage_limit",
    "per_user_limit",
    "is_active",
)


class CouponAdminError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _check_discount(type: str, value: int | None) -> None:
    # a patch may change type or value alone, so check the merged row
    if value is None or value <= 0:
        raise CouponAdminError("Coupon value must be positive")
    if type == DiscountType.PERCENTAGE.value and value > 100:
        raise CouponAdminError("Percentage discount cannot exceed 100%")


async def _get_for_update(db: AsyncSession, coupon_id: int) -> Coupon:
    res = await db.execute(select(Coupon).where(Coupon.id == coupon_id).with_for_update())
    coupon = res.scalar_one_or_none()
    if coupon is None:
        raise CouponAdminError("Coupon not found", status_code=404)
    return coupon


async def admin_create_coupon(db: AsyncSession, *, data: dict, actor_user_id: int) -> Coupon:
    coupon = Coupon(code=data["code"].upper(), total_used=0)
    for key in _EDITABLE:
        if key in data:
            setattr(coupon, key, data[key])

    try:
        db.add(coupon)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise CouponAdminError("Coupon code already exists", status_code=409)
    except Exception:
        await db.rollback()
        raise

    await db.refresh(coupon)
    log.info("coupon_created", coupon_code=coupon.code, actor_user_id=actor_user_id)
    return coupon


async def admin_update_coupon(db: AsyncSession, *, coupon_id: int, data: dict, actor_user_id: int) -> Coupon:
    try:
        coupon = await _get_for_update(db, coupon_id)
        for key, value in data.items():
            if key in _EDITABLE:
                setattr(coupon, key, value)
        _check_discount(coupon.type, coupon.value)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(coupon)
    log.info("coupon_updated", coupon_code=coupon.code, fields=sorted(data), actor_user_id=actor_user_id)
    return coupon


async def admin_toggle_coupon(db: AsyncSession, *, coupon_id: int, actor_user_id: int) -> Coupon:
    try:
        coupon = await _get_for_update(db, coupon_id)
        coupon.is_active = not coupon.is_active
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(coupon)
    log.info("coupon_toggled", coupon_code=coupon.code, is_active=coupon.is_active, actor_user_id=actor_user_id)
    return coupon


async def admin_delete_coupon(db: AsyncSession, *, coupon_id: int, actor_user_id: int) -> str:
    """
    Remove a coupon and its per-user usage rows.

    Orders keep their coupon_code snapshot; paying such an order later skips
    the usage count instead of failing.
    """
    try:
        coupon = await _get_for_update(db, coupon_id)
        code = coupon.code
        await db.execute(delete(CouponUsage).where(CouponUsage.coupon_id == coupon_id))
        await db.execute(delete(Coupon).where(Coupon.id == coupon_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info("coupon_deleted", coupon_code=code, actor_user_id=actor_user_id)
    return code
