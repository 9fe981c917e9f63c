from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.db import Base, BigIntPK, JSONType
from storefront.models.order_item import OrderItem


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"
    # downstream fulfillment, never set by reconciliation
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING','PROCESSING','FAILED','SHIPPED','DELIVERED','CANCELLED')",
            name="orders_status_check",
        ),
        CheckConstraint(
            "payment_status IN ('PENDING','SUCCESS','FAILED')",
            name="orders_payment_status_check",
        ),
        CheckConstraint(
            "subtotal_cents >= 0 AND discount_cents >= 0 AND shipping_cents >= 0 AND total_cents >= 0",
            name="orders_amounts_nonneg_chk",
        ),
        CheckConstraint("discount_cents <= subtotal_cents", name="orders_discount_le_subtotal_chk"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # ORD-YYYYMMDD-NNN, also sent to the gateway as the receipt
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=OrderStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.PENDING.value
    )

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    coupon_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    razorpay_order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    razorpay_payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    payment_meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    payment_captured_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # money may have been captured but the order could not be reconciled
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tracking_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    billing_address: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )


Index("ix_orders_user_created", Order.user_id, Order.created_at.desc())
Index("ix_orders_needs_review", Order.needs_review)
