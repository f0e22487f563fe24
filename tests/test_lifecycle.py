"""
tests/test_lifecycle.py
Booking state graph, cancellation window and date-derived views.
"""

from datetime import datetime, timedelta, timezone

from services.booking.lifecycle import (
    can_cancel,
    cancellation_deadline,
    cancelled_by_for,
    is_active,
    is_documented_transition,
    is_past,
    is_upcoming,
    total_nights,
)
from shared.models.models import Booking, BookingStatus, CancelledBy, UserRole

NOW = datetime(2027, 1, 1, 12, 0, tzinfo=timezone.utc)


def _booking(check_in: datetime, nights: int = 3, status: BookingStatus = BookingStatus.CONFIRMED) -> Booking:
    return Booking(check_in=check_in, check_out=check_in + timedelta(days=nights), status=status)


# ── Transitions ───────────────────────────────────────────────

def test_documented_transitions():
    assert is_documented_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED)
    assert is_documented_transition(BookingStatus.PENDING, BookingStatus.CANCELLED)
    assert is_documented_transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
    assert is_documented_transition(BookingStatus.CONFIRMED, BookingStatus.DISPUTED)


def test_terminal_states_have_no_exits():
    assert not is_documented_transition(BookingStatus.COMPLETED, BookingStatus.CONFIRMED)
    assert not is_documented_transition(BookingStatus.CANCELLED, BookingStatus.CONFIRMED)
    assert not is_documented_transition(BookingStatus.PENDING, BookingStatus.COMPLETED)


# ── Cancellation ──────────────────────────────────────────────

def test_cancellation_deadline_is_seven_days_before_check_in():
    check_in = NOW + timedelta(days=20)
    assert cancellation_deadline(check_in) == NOW + timedelta(days=13)


def test_can_cancel_confirmed_booking_outside_window():
    assert can_cancel(_booking(NOW + timedelta(days=8)), now=NOW)


def test_cannot_cancel_inside_window():
    assert not can_cancel(_booking(NOW + timedelta(days=7)), now=NOW)
    assert not can_cancel(_booking(NOW + timedelta(days=2)), now=NOW)


def test_cannot_cancel_pending_booking():
    assert not can_cancel(_booking(NOW + timedelta(days=30), status=BookingStatus.PENDING), now=NOW)


def test_cancelled_by_follows_role():
    assert cancelled_by_for(UserRole.ADMIN) == CancelledBy.ADMIN
    assert cancelled_by_for(UserRole.HOST) == CancelledBy.HOST
    assert cancelled_by_for(UserRole.GUEST) == CancelledBy.GUEST


# ── Date views ────────────────────────────────────────────────

def test_total_nights_rounds_partial_days_up():
    assert total_nights(NOW, NOW + timedelta(days=3)) == 3
    assert total_nights(NOW, NOW + timedelta(days=2, hours=1)) == 3


def test_upcoming_active_past():
    upcoming = _booking(NOW + timedelta(days=5))
    assert is_upcoming(upcoming, now=NOW)
    assert not is_active(upcoming, now=NOW)
    assert not is_past(upcoming, now=NOW)

    active = _booking(NOW - timedelta(days=1))
    assert is_active(active, now=NOW)
    assert not is_upcoming(active, now=NOW)

    past = _booking(NOW - timedelta(days=10))
    assert is_past(past, now=NOW)
    assert not is_active(past, now=NOW)


def test_pending_booking_is_never_upcoming_or_active():
    pending = _booking(NOW + timedelta(days=5), status=BookingStatus.PENDING)
    assert not is_upcoming(pending, now=NOW)
    ongoing = _booking(NOW - timedelta(days=1), status=BookingStatus.PENDING)
    assert not is_active(ongoing, now=NOW)
