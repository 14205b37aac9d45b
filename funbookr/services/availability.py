"""Availability checks against an activity's recurring weekly schedules."""

import logging
from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.booking import Booking, BookingStatus
from funbookr.models.catalog import Schedule
from funbookr.services.result import Result, business_rule, validation

logger = logging.getLogger(__name__)

# Bookings that hold places on a schedule occurrence
HOLDING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


@dataclass(frozen=True)
class Availability:
    schedule_id: int
    remaining_spots: int
    start_time: time
    end_time: time


async def find_schedule(db: AsyncSession, activity_id: int, booking_date: date, booking_time: time) -> Schedule | None:
    """First active schedule whose weekdays include the date and whose window contains the time."""
    result = await db.execute(
        select(Schedule)
        .where(Schedule.activity_id == activity_id, Schedule.is_active.is_(True))
        .order_by(Schedule.id)
    )
    weekday = booking_date.weekday()
    for schedule in result.scalars().all():
        if schedule.covers(weekday, booking_time):
            return schedule
    return None


async def booked_participants(db: AsyncSession, activity_id: int, booking_date: date, booking_time: time) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(Booking.participants), 0)).where(
            Booking.activity_id == activity_id,
            Booking.booking_date == booking_date,
            Booking.booking_time == booking_time,
            Booking.status.in_(HOLDING_STATUSES),
        )
    )
    return int(result.scalar_one())


async def check_availability(
    db: AsyncSession,
    activity_id: int,
    booking_date: date,
    booking_time: time,
    participants: int,
) -> Result[Availability]:
    """Check that `participants` places are free on the matching schedule occurrence."""
    if participants <= 0:
        return validation("Number of participants must be at least 1", "participants")

    schedule = await find_schedule(db, activity_id, booking_date, booking_time)
    if schedule is None:
        logger.warning(
            "No schedule for activity %s on %s at %s", activity_id, booking_date, booking_time
        )
        return business_rule("Activity is not available on the selected day or time", "not_scheduled")

    booked = await booked_participants(db, activity_id, booking_date, booking_time)
    remaining = schedule.available_spots - booked

    if remaining < participants:
        logger.warning(
            "Activity %s on %s at %s has %s spots left, %s requested",
            activity_id,
            booking_date,
            booking_time,
            remaining,
            participants,
        )
        return business_rule(
            f"Only {max(remaining, 0)} spots available. Requested: {participants}", "insufficient_spots"
        )

    return Result.success(
        Availability(
            schedule_id=schedule.id,
            remaining_spots=remaining,
            start_time=schedule.start_time,
            end_time=schedule.end_time,
        )
    )
