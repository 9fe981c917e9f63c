from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.models.site_config import SiteConfig
from storefront.services.pricing import ShippingRule

log = structlog.get_logger(__name__)


async def _get_row(db: AsyncSession) -> SiteConfig | None:
    res = await db.execute(select(SiteConfig).order_by(SiteConfig.id.asc()).limit(1))
    return res.scalar_one_or_none()


async def get_shipping_rule(db: AsyncSession) -> ShippingRule:
    row = await _get_row(db)
    if row is None:
        return ShippingRule(
            charge_cents=settings.DEFAULT_SHIPPING_CHARGE_CENTS,
            free_shipping_min_order_cents=settings.DEFAULT_FREE_SHIPPING_MIN_ORDER_CENTS,
        )
    return ShippingRule(
        charge_cents=row.shipping_charge_cents,
        free_shipping_min_order_cents=row.free_shipping_min_order_cents,
    )


async def set_shipping_rule(
    db: AsyncSession,
    *,
    charge_cents: int | None,
    free_shipping_min_order_cents: int | None,
) -> ShippingRule:
    try:
        row = await _get_row(db)
        if row is None:
            row = SiteConfig()
            db.add(row)

        row.shipping_charge_cents = charge_cents
        row.free_shipping_min_order_cents = free_shipping_min_order_cents

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info(
        "shipping_rule_updated",
        charge_cents=charge_cents,
        free_shipping_min_order_cents=free_shipping_min_order_cents,
    )
    return ShippingRule(charge_cents, free_shipping_min_order_cents)
