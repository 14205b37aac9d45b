"""Booking state machine.

    pending -> confirmed -> completed
    pending | confirmed -> cancelled
    confirmed -> checked_in -> completed

Completed and cancelled are terminal. Ownership and permission checks belong
to the callers; this module only knows which moves are legal and when.
"""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from funbookr.core.config import settings
from funbookr.models.booking import Booking, BookingStatus
from funbookr.services.pricing import money

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CHECKED_IN, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# (minimum hours before start, refund percentage), most generous first
REFUND_TIERS: list[tuple[int, int]] = [(48, 100), (24, 50)]


class InvalidTransition(Exception):
    """Raised when a booking is asked to move to a state it cannot reach."""

    def __init__(self, current: BookingStatus, target: BookingStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from {current} to {target}")


def slot_start(booking_date: date, booking_time: time) -> datetime:
    """Booking date/time are local wall-clock values in the platform timezone."""
    local = datetime.combine(booking_date, booking_time, tzinfo=ZoneInfo(settings.timezone))
    return local.astimezone(UTC)


def event_start(booking: Booking) -> datetime:
    return slot_start(booking.booking_date, booking.booking_time)


def time_until_start(booking: Booking, now: datetime) -> timedelta:
    return event_start(booking) - now


def can_transition(booking: Booking, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[booking.status]


def transition(booking: Booking, target: BookingStatus, now: datetime | None = None) -> None:
    """Move the booking to `target` and stamp the matching timestamp."""
    if not can_transition(booking, target):
        raise InvalidTransition(booking.status, target)
    now = now or datetime.now(UTC)

    booking.status = target
    if target == BookingStatus.CONFIRMED:
        booking.confirmed_at = now
    elif target == BookingStatus.CHECKED_IN:
        booking.checked_in_at = now
    elif target == BookingStatus.COMPLETED:
        booking.completed_at = now
    elif target == BookingStatus.CANCELLED:
        booking.cancelled_at = now


def confirm_booking(booking: Booking, now: datetime | None = None) -> None:
    transition(booking, BookingStatus.CONFIRMED, now)


def can_be_cancelled(booking: Booking, now: datetime) -> bool:
    """Pending or confirmed, and the event has not started yet."""
    if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
        return False
    return now < event_start(booking)


def refund_percentage(hours_until_start: float) -> int:
    """100% at 48h or more before the start, 50% from 24h, nothing after that."""
    for min_hours, percentage in REFUND_TIERS:
        if hours_until_start >= min_hours:
            return percentage
    return 0


def calculate_refund(booking: Booking, now: datetime) -> Decimal:
    """Refund owed if the booking were cancelled at `now`. Unpaid bookings get nothing back."""
    if not booking.is_paid:
        return Decimal("0.00")
    hours = time_until_start(booking, now).total_seconds() / 3600
    return money(booking.total_amount * refund_percentage(hours) / 100)
