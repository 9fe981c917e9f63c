from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ShippingConfigIn(BaseModel):
    shipping_charge_cents: Optional[int] = Field(default=None, ge=0)
    free_shipping_min_order_cents: Optional[int] = Field(default=None, ge=0)


class ShippingConfigOut(BaseModel):
    shipping_charge_cents: Optional[int] = None
    free_shipping_min_order_cents: Optional[int] = None
