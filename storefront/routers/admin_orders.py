from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import require_admin
from storefront.models.user import User
from storefront.schemas.orders import FulfillmentIn, OrderOut
from storefront.services.orders import OrdersError, update_fulfillment

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.post("/{order_id}/fulfillment", response_model=OrderOut)
async def admin_update_fulfillment(
    order_id: int,
    payload: FulfillmentIn,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(require_admin),
) -> OrderOut:
    try:
        order = await update_fulfillment(
            db,
            order_id=order_id,
            status=payload.status,
            tracking_id=payload.tracking_id,
            actor_user_id=admin_user.id,
        )
    except OrdersError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return OrderOut.model_validate(order)
