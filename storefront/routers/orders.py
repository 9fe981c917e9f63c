from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import get_current_user
from storefront.models.user import User
from storefront.schemas.orders import OrderOut, OrdersListOut
from storefront.services.orders import OrdersError, get_user_order, list_user_orders

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("/my", response_model=OrdersListOut)
async def list_my_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OrdersListOut:
    data = await list_user_orders(
        db,
        user_id=current_user.id,
        status=status,
        payment_status=payment_status,
        limit=limit,
        offset=offset,
    )
    return OrdersListOut(
        items=[OrderOut.model_validate(o) for o in data["items"]],
        limit=data["limit"],
        offset=data["offset"],
        total=data["total"],
    )


@router.get("/{order_id}", response_model=OrderOut)
async def get_my_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> OrderOut:
    try:
        order = await get_user_order(db, order_id=order_id, user_id=current_user.id)
    except OrdersError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return OrderOut.model_validate(order)
