from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.schemas.orders import OrderOut


class AddressIn(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = Field(min_length=10)
    email: Optional[str] = None
    address: str = Field(min_length=5)
    apartment: Optional[str] = None
    city: str = Field(min_length=2)
    state: str = Field(min_length=2)
    pin_code: str = Field(min_length=5, max_length=10)
    country: str = "India"


class CheckoutItemIn(BaseModel):
    product_id: int
    name: str = Field(min_length=1)
    image: Optional[str] = None
    variant_label: str = Field(min_length=1)
    # price the customer saw; must match the current variant price
    unit_price_cents: int = Field(gt=0)
    quantity: int = Field(gt=0)


class CheckoutIn(BaseModel):
    items: List[CheckoutItemIn] = Field(min_length=1)
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    coupon_code: Optional[str] = None


class CheckoutOut(BaseModel):
    order_id: int
    order_number: str
    razorpay_order_id: str
    key: str
    amount_cents: int
    currency: str

    subtotal_cents: int
    discount_cents: int
    shipping_cents: int


class ConfirmIn(BaseModel):
    order_id: int
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class ConfirmOut(BaseModel):
    success: bool
    message: str
    order: Optional[OrderOut] = None


class AbandonIn(BaseModel):
    order_id: int


class AbandonOut(BaseModel):
    success: bool
    message: str
    should_delete: bool
    status: Optional[str] = None
    payment_status: Optional[str] = None
