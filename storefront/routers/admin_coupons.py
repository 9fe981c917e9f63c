# storefront/routers/admin_coupons.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import require_admin
from storefront.schemas.coupons import AdminCouponCreate, AdminCouponResponse, AdminCouponUpdate
from storefront.services.coupons import (
    CouponAdminError,
    admin_create_coupon,
    admin_delete_coupon,
    admin_toggle_coupon,
    admin_update_coupon,
)

router = APIRouter(prefix="/admin/coupons", tags=["Admin - Coupons"])


@router.post("", response_model=AdminCouponResponse, status_code=201)
async def create_coupon(
    body: AdminCouponCreate,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_create_coupon(db, data=body.model_dump(), actor_user_id=admin_user.id)
    except CouponAdminError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{coupon_id}", response_model=AdminCouponResponse)
async def update_coupon(
    coupon_id: int,
    body: AdminCouponUpdate,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_update_coupon(
            db,
            coupon_id=coupon_id,
            data=body.model_dump(exclude_unset=True),
            actor_user_id=admin_user.id,
        )
    except CouponAdminError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{coupon_id}/toggle", response_model=AdminCouponResponse)
async def toggle_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_toggle_coupon(db, coupon_id=coupon_id, actor_user_id=admin_user.id)
    except CouponAdminError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        code = await admin_delete_coupon(db, coupon_id=coupon_id, actor_user_id=admin_user.id)
    except CouponAdminError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"detail": f"Coupon {code} deleted"}
