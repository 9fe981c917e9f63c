from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import get_current_user
from storefront.models.user import User
from storefront.schemas.coupons import CouponValidateIn, CouponValidateOut
from storefront.services.pricing import CouponError, validate_coupon

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidateOut)
async def preview_coupon(
    payload: CouponValidateIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CouponValidateOut:
    try:
        coupon, discount = await validate_coupon(
            db,
            code=payload.code,
            subtotal_cents=payload.subtotal_cents,
            user_id=current_user.id,
        )
    except CouponError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CouponValidateOut(code=coupon.code, type=coupon.type, value=coupon.value, discount_cents=discount)
