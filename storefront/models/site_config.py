from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.db import Base, BigIntPK


class SiteConfig(Base):
    """Single-row store settings. NULL means the feature is disabled."""

    __tablename__ = "site_config"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    shipping_charge_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    free_shipping_min_order_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
