"""Availability against weekly schedules and running participant counts."""

from datetime import date, time

from conftest import EVENT_DATE, EVENT_TIME, make_booking

from funbookr.models import BookingStatus, Schedule
from funbookr.services.availability import check_availability
from funbookr.services.result import ErrorKind


async def test_available_with_full_capacity(db, catalog):
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 4)
    assert result.ok
    assert result.value.schedule_id == catalog.schedule.id
    assert result.value.remaining_spots == 10
    assert result.value.start_time == time(9, 0)


async def test_window_bounds_are_inclusive(db, catalog):
    assert (await check_availability(db, catalog.activity.id, EVENT_DATE, time(9, 0), 1)).ok
    assert (await check_availability(db, catalog.activity.id, EVENT_DATE, time(18, 0), 1)).ok


async def test_outside_window(db, catalog):
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, time(19, 0), 1)
    assert not result.ok
    assert result.error.kind == ErrorKind.BUSINESS_RULE
    assert result.error.message == "Activity is not available on the selected day or time"


async def test_weekday_not_in_schedule(db, catalog):
    catalog.schedule.days_of_week = [0, 1, 2, 3, 4]  # weekdays only
    await db.flush()
    saturday = date(2026, 1, 10)
    result = await check_availability(db, catalog.activity.id, saturday, EVENT_TIME, 1)
    assert not result.ok


async def test_inactive_schedule_ignored(db, catalog):
    catalog.schedule.is_active = False
    await db.flush()
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 1)
    assert not result.ok


async def test_pending_and_confirmed_bookings_hold_places(db, catalog):
    await make_booking(db, catalog, participants=3, status=BookingStatus.PENDING)
    await make_booking(db, catalog, participants=4, status=BookingStatus.CONFIRMED)
    await make_booking(db, catalog, participants=5, status=BookingStatus.CANCELLED)

    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 3)
    assert result.ok
    assert result.value.remaining_spots == 3


async def test_insufficient_spots(db, catalog):
    await make_booking(db, catalog, participants=8, status=BookingStatus.CONFIRMED)

    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 3)
    assert not result.ok
    assert result.error.message == "Only 2 spots available. Requested: 3"


async def test_other_times_do_not_count(db, catalog):
    await make_booking(db, catalog, participants=10, booking_time=time(14, 0), status=BookingStatus.CONFIRMED)
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 10)
    assert result.ok


async def test_first_matching_schedule_wins(db, catalog):
    db.add(
        Schedule(
            activity_id=catalog.activity.id,
            days_of_week=[5],
            start_time=time(8, 0),
            end_time=time(12, 0),
            available_spots=50,
        )
    )
    await db.flush()
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 1)
    assert result.value.schedule_id == catalog.schedule.id


async def test_zero_participants_is_validation_failure(db, catalog):
    result = await check_availability(db, catalog.activity.id, EVENT_DATE, EVENT_TIME, 0)
    assert result.error.kind == ErrorKind.VALIDATION
