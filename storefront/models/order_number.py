from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.db import Base


class OrderNumberCounter(Base):
    __tablename__ = "order_number_counters"

    # YYYYMMDD
    day: Mapped[str] = mapped_column(String(8), primary_key=True)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
