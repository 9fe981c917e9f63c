# storefront/models/coupon.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.db import Base, BigIntPK


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("type IN ('PERCENTAGE','FLAT')", name="coupons_type_check"),
        CheckConstraint("value > 0", name="coupons_value_positive_chk"),
        CheckConstraint("total_used >= 0", name="coupons_total_used_nonneg_chk"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # always stored upper-case
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    type: Mapped[str] = mapped_column(String(16), nullable=False)

    # PERCENTAGE: whole percent (1..100). FLAT: amount in cents.
    value: Mapped[int] = mapped_column(Integer, nullable=False)

    min_order_value_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_discount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    global_usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    per_user_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    total_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CouponUsage(Base):
    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", name="coupon_usages_coupon_user_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    coupon_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
