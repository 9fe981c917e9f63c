from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.deps import require_admin
from storefront.schemas.site_config import ShippingConfigIn, ShippingConfigOut
from storefront.services.site_config import get_shipping_rule, set_shipping_rule

router = APIRouter(tags=["Shipping"])


@router.get("/shipping-config", response_model=ShippingConfigOut)
async def read_shipping_config(db: AsyncSession = Depends(get_db)) -> ShippingConfigOut:
    rule = await get_shipping_rule(db)
    return ShippingConfigOut(
        shipping_charge_cents=rule.charge_cents,
        free_shipping_min_order_cents=rule.free_shipping_min_order_cents,
    )


@router.put("/admin/shipping-config", response_model=ShippingConfigOut)
async def write_shipping_config(
    body: ShippingConfigIn,
    db: AsyncSession = Depends(get_db),
    _=Depends(require_admin),
) -> ShippingConfigOut:
    rule = await set_shipping_rule(
        db,
        charge_cents=body.shipping_charge_cents,
        free_shipping_min_order_cents=body.free_shipping_min_order_cents,
    )
    return ShippingConfigOut(
        shipping_charge_cents=rule.charge_cents,
        free_shipping_min_order_cents=rule.free_shipping_min_order_cents,
    )
