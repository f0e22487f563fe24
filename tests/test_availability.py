"""
tests/test_availability.py
Date-overlap rules for host bookings.
"""

from datetime import datetime, timedelta, timezone

from services.booking.availability import DateRange, is_available, overlaps

BASE = datetime(2027, 3, 10, 14, 0, tzinfo=timezone.utc)


def _range(start_day: int, end_day: int) -> DateRange:
    return DateRange(BASE + timedelta(days=start_day), BASE + timedelta(days=end_day))


def test_disjoint_ranges_do_not_conflict():
    assert not overlaps(_range(0, 3), _range(5, 8))
    assert not overlaps(_range(5, 8), _range(0, 3))


def test_existing_spans_candidate_start():
    assert overlaps(_range(0, 4), _range(2, 6))


def test_existing_spans_candidate_end():
    assert overlaps(_range(4, 9), _range(2, 6))


def test_existing_inside_candidate():
    assert overlaps(_range(3, 4), _range(1, 8))


def test_candidate_inside_existing():
    assert overlaps(_range(0, 10), _range(2, 3))


def test_touching_endpoints_conflict():
    """No same-day turnover: check-in on another stay's check-out is taken."""
    assert overlaps(_range(0, 3), _range(3, 5))
    assert overlaps(_range(3, 5), _range(0, 3))


def test_naive_and_aware_datetimes_compare_as_utc():
    naive = DateRange(datetime(2027, 3, 10, 14, 0), datetime(2027, 3, 12, 14, 0))
    assert overlaps(naive, _range(1, 4))


def test_is_available_checks_every_existing_range():
    existing = [_range(0, 2), _range(10, 12)]
    assert is_available(_range(4, 8), existing)
    assert not is_available(_range(11, 15), existing)
    assert is_available(_range(0, 2), [])
