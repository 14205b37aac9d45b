"""Booking state machine and the tiered cancellation refund."""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

import pytest

from funbookr.models import Booking, BookingStatus
from funbookr.services.booking_state import (
    InvalidTransition,
    calculate_refund,
    can_be_cancelled,
    event_start,
    refund_percentage,
    transition,
)

# 10:00 in Asia/Kolkata is 04:30 UTC
START = datetime(2026, 1, 10, 4, 30, tzinfo=UTC)


def _booking(status=BookingStatus.CONFIRMED, paid=True) -> Booking:
    return Booking(
        booking_date=date(2026, 1, 10),
        booking_time=time(10, 0),
        status=status,
        total_amount=Decimal("2000.00"),
        paid_at=START - timedelta(days=5) if paid else None,
    )


def test_event_start_uses_platform_timezone():
    assert event_start(_booking()) == START


class TestRefundTiers:
    @pytest.mark.parametrize(
        ("before_start", "percentage", "refund"),
        [
            (timedelta(hours=48), 100, Decimal("2000.00")),
            (timedelta(hours=47, minutes=59), 50, Decimal("1000.00")),
            (timedelta(hours=24), 50, Decimal("1000.00")),
            (timedelta(hours=23, minutes=59), 0, Decimal("0.00")),
        ],
    )
    def test_boundaries(self, before_start, percentage, refund):
        now = START - before_start
        assert refund_percentage(before_start.total_seconds() / 3600) == percentage
        assert calculate_refund(_booking(), now) == refund

    def test_unpaid_booking_gets_nothing(self):
        assert calculate_refund(_booking(paid=False), START - timedelta(days=10)) == Decimal("0.00")


class TestTransitions:
    def test_confirm_stamps_confirmed_at(self):
        booking = _booking(status=BookingStatus.PENDING)
        transition(booking, BookingStatus.CONFIRMED, START)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.confirmed_at == START

    def test_check_in_then_complete(self):
        booking = _booking()
        transition(booking, BookingStatus.CHECKED_IN, START)
        transition(booking, BookingStatus.COMPLETED, START + timedelta(hours=3))
        assert booking.checked_in_at == START
        assert booking.completed_at == START + timedelta(hours=3)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (BookingStatus.PENDING, BookingStatus.COMPLETED),
            (BookingStatus.PENDING, BookingStatus.CHECKED_IN),
            (BookingStatus.CHECKED_IN, BookingStatus.CANCELLED),
            (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
            (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        ],
    )
    def test_illegal_moves_raise(self, current, target):
        with pytest.raises(InvalidTransition):
            transition(_booking(status=current), target, START)


class TestCanBeCancelled:
    def test_pending_and_confirmed_before_start(self):
        assert can_be_cancelled(_booking(status=BookingStatus.PENDING), START - timedelta(minutes=1))
        assert can_be_cancelled(_booking(status=BookingStatus.CONFIRMED), START - timedelta(minutes=1))

    def test_not_after_start(self):
        assert not can_be_cancelled(_booking(), START)

    def test_not_from_checked_in(self):
        assert not can_be_cancelled(_booking(status=BookingStatus.CHECKED_IN), START - timedelta(days=1))
