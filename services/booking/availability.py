"""
services/booking/availability.py
Date-overlap detection for host bookings.

Ranges are closed on both ends: a stay that starts on the day another ends
is a conflict (no same-day turnover).
"""

import uuid
from datetime import datetime, timedelta
from typing import Iterable, NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, BookingStatus
from shared.utils.dates import ensure_utc

# Statuses that hold the calendar
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class DateRange(NamedTuple):
    check_in: datetime
    check_out: datetime


def overlaps(existing: DateRange, candidate: DateRange) -> bool:
    """
    True if `existing` [a, b] conflicts with `candidate` [c, d]:
      - existing spans the candidate start  (a <= c <= b)
      - existing spans the candidate end    (a <= d <= b)
      - existing sits inside the candidate  (c <= a and b <= d)
    """
    a, b = ensure_utc(existing.check_in), ensure_utc(existing.check_out)
    c, d = ensure_utc(candidate.check_in), ensure_utc(candidate.check_out)
    return (
        (a <= c and b >= c)
        or (a <= d and b >= d)
        or (a >= c and b <= d)
    )


def is_available(candidate: DateRange, existing: Iterable[DateRange]) -> bool:
    return not any(overlaps(rng, candidate) for rng in existing)


async def find_blocking_ranges(
    db: AsyncSession,
    host_id: uuid.UUID,
    candidate: DateRange,
) -> list[DateRange]:
    """
    Load the host's active bookings around the candidate window.
    The SQL filter is a coarse prefilter (padded by a day for timezone
    slop); overlaps() decides.
    """
    pad = timedelta(days=1)
    stmt = select(Booking.check_in, Booking.check_out).where(
        Booking.host_id == host_id,
        Booking.status.in_(BLOCKING_STATUSES),
        Booking.check_in <= candidate.check_out + pad,
        Booking.check_out >= candidate.check_in - pad,
    )
    result = await db.execute(stmt)
    return [DateRange(ci, co) for ci, co in result.all()]


async def check_availability(
    db: AsyncSession,
    host_id: uuid.UUID,
    check_in: datetime,
    check_out: datetime,
) -> bool:
    candidate = DateRange(check_in, check_out)
    existing = await find_blocking_ranges(db, host_id, candidate)
    return is_available(candidate, existing)
