"""
services/booking/lifecycle.py
Booking state machine and date-derived views.
States: PENDING → CONFIRMED → COMPLETED
        PENDING | CONFIRMED → CANCELLED
        CONFIRMED → DISPUTED
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from config.settings import settings
from shared.models.models import Booking, BookingStatus, CancelledBy, UserRole
from shared.utils.dates import ensure_utc, utcnow

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.DISPUTED,
    }),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.DISPUTED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


def is_documented_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]


# ── Cancellation ──────────────────────────────────────────────

def cancellation_deadline(check_in: datetime) -> datetime:
    return ensure_utc(check_in) - timedelta(days=settings.CANCELLATION_WINDOW_DAYS)


def can_cancel(booking: Booking, now: Optional[datetime] = None) -> bool:
    """Only confirmed bookings, and only before the cancellation deadline."""
    now = ensure_utc(now) if now else utcnow()
    return (
        now < cancellation_deadline(booking.check_in)
        and booking.status == BookingStatus.CONFIRMED
    )


def cancelled_by_for(role: UserRole) -> CancelledBy:
    if role == UserRole.ADMIN:
        return CancelledBy.ADMIN
    if role == UserRole.HOST:
        return CancelledBy.HOST
    return CancelledBy.GUEST


# ── Date views ────────────────────────────────────────────────

def total_nights(check_in: datetime, check_out: datetime) -> int:
    delta = ensure_utc(check_out) - ensure_utc(check_in)
    return math.ceil(delta.total_seconds() / 86400)


def is_upcoming(booking: Booking, now: Optional[datetime] = None) -> bool:
    now = ensure_utc(now) if now else utcnow()
    return ensure_utc(booking.check_in) > now and booking.status == BookingStatus.CONFIRMED


def is_active(booking: Booking, now: Optional[datetime] = None) -> bool:
    now = ensure_utc(now) if now else utcnow()
    return (
        ensure_utc(booking.check_in) <= now <= ensure_utc(booking.check_out)
        and booking.status == BookingStatus.CONFIRMED
    )


def is_past(booking: Booking, now: Optional[datetime] = None) -> bool:
    now = ensure_utc(now) if now else utcnow()
    return ensure_utc(booking.check_out) < now
