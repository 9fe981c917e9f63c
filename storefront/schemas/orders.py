from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    variant_label: str
    name: str
    image: Optional[str] = None
    unit_price_cents: int
    quantity: int


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: int

    status: str
    payment_status: str

    subtotal_cents: int
    discount_cents: int
    shipping_cents: int
    total_cents: int
    currency: str

    coupon_code: Optional[str] = None
    razorpay_order_id: str
    razorpay_payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_captured_at: Optional[datetime] = None
    needs_review: bool = False
    tracking_id: Optional[str] = None

    created_at: datetime

    items: List[OrderItemOut] = Field(default_factory=list)


class OrdersListOut(BaseModel):
    items: List[OrderOut] = Field(default_factory=list)
    limit: int
    offset: int
    total: int


class FulfillmentIn(BaseModel):
    status: Literal["SHIPPED", "DELIVERED", "CANCELLED"]
    tracking_id: Optional[str] = None
