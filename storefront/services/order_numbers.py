from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.models.order_number import OrderNumberCounter

log = structlog.get_logger(__name__)

_MAX_ATTEMPTS = 3


class OrderNumberError(Exception):
    pass


def format_order_number(day: str, seq: int) -> str:
    return f"ORD-{day}-{seq:03d}"


def _day_key(now: datetime | None) -> str:
    tz = ZoneInfo(settings.ORDER_NUMBER_TIMEZONE)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.strftime("%Y%m%d")


async def _bump(db: AsyncSession, day: str) -> int:
    res = await db.execute(
        update(OrderNumberCounter)
        .where(OrderNumberCounter.day == day)
        .values(last_seq=OrderNumberCounter.last_seq + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        # first order of the day; a concurrent insert surfaces as IntegrityError
        db.add(OrderNumberCounter(day=day, last_seq=1))
        await db.flush()
        return 1

    seq = await db.execute(
        select(OrderNumberCounter.last_seq)
        .where(OrderNumberCounter.day == day)
        .execution_options(populate_existing=True)
    )
    return int(seq.scalar_one())


async def allocate_order_number(db: AsyncSession, *, now: datetime | None = None) -> str:
    """
    Allocate the next ORD-YYYYMMDD-NNN for the day.

    Uses a per-day counter row bumped atomically in its own transaction, so
    numbers are never reused even when a pending order is later abandoned.
    Gaps are possible if the caller fails after allocation.
    """
    day = _day_key(now)

    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            seq = await _bump(db, day)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            log.warning("order_number_counter_conflict", day=day, attempt=attempt)
            continue
        except Exception:
            await db.rollback()
            raise

        number = format_order_number(day, seq)
        log.info("order_number_allocated", order_number=number)
        return number

    raise OrderNumberError(f"Could not allocate an order number for {day}.")
