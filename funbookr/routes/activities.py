"""Activity routes: detail and availability for a date/time."""

from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import unwrap
from funbookr.schemas import ActivityOut, AvailabilityOut
from funbookr.services.availability import check_availability
from funbookr.services.background import dispatch
from funbookr.services.catalog import get_activity
from funbookr.services.result import ErrorKind

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("/{activity_id}", response_model=ActivityOut)
async def activity_detail(activity_id: int, db: AsyncSession = Depends(get_db)):
    activity = await get_activity(db, activity_id, with_schedules=True)
    if activity is None or not activity.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")

    dispatch("funbookr.increment_view_count", activity.id)
    return activity


@router.get("/{activity_id}/availability", response_model=AvailabilityOut)
async def activity_availability(
    activity_id: int,
    booking_date: date = Query(..., alias="date"),
    booking_time: time = Query(..., alias="time"),
    participants: int = Query(1, ge=1),
    db: AsyncSession = Depends(get_db),
):
    activity = await get_activity(db, activity_id)
    if activity is None or not activity.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")

    result = await check_availability(db, activity.id, booking_date, booking_time, participants)
    if not result.ok and result.error.kind == ErrorKind.BUSINESS_RULE:
        return AvailabilityOut(available=False, reason=result.error.message)

    availability = unwrap(result)
    return AvailabilityOut(
        available=True,
        schedule_id=availability.schedule_id,
        remaining_spots=availability.remaining_spots,
        start_time=availability.start_time,
        end_time=availability.end_time,
    )
