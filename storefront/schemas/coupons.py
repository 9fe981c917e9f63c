# storefront/schemas/coupons.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CouponValidateIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    subtotal_cents: int = Field(ge=0)


class CouponValidateOut(BaseModel):
    code: str
    type: str
    value: int
    discount_cents: int


class _CouponFields(BaseModel):
    @model_validator(mode="after")
    def _percentage_le_100(self):
        if getattr(self, "type", None) == "PERCENTAGE" and (getattr(self, "value", None) or 0) > 100:
            raise ValueError("Percentage discount cannot exceed 100%")
        return self


class AdminCouponCreate(_CouponFields):
    code: str = Field(min_length=3, max_length=20, pattern=r"^[A-Z0-9_-]+$")
    type: Literal["PERCENTAGE", "FLAT"]
    value: int = Field(gt=0)
    min_order_value_cents: Optional[int] = Field(default=None, ge=0)
    max_discount_cents: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
    global_usage_limit: Optional[int] = Field(default=None, ge=1)
    per_user_limit: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class AdminCouponUpdate(_CouponFields):
    type: Optional[Literal["PERCENTAGE", "FLAT"]] = None
    value: Optional[int] = Field(default=None, gt=0)
    min_order_value_cents: Optional[int] = Field(default=None, ge=0)
    max_discount_cents: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
    global_usage_limit: Optional[int] = Field(default=None, ge=1)
    per_user_limit: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("type", "value", "is_active", mode="before")
    @classmethod
    def _not_null(cls, v):
        # omitted means unchanged; these columns have no "unset" state
        if v is None:
            raise ValueError("must not be null")
        return v


class AdminCouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    type: str
    value: int
    min_order_value_cents: Optional[int]
    max_discount_cents: Optional[int]
    expires_at: Optional[datetime]
    global_usage_limit: Optional[int]
    per_user_limit: Optional[int]
    total_used: int
    is_active: bool
    created_at: datetime
