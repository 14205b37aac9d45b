"""Booking routes: create, list, cancel, discounts and provider actions."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user, get_gateway, unwrap
from funbookr.models.booking import Booking
from funbookr.models.user import User
from funbookr.schemas import (
    AppliedDiscountOut,
    BookingCreate,
    BookingOut,
    CancellationOut,
    CancelRequest,
    GiftCardApply,
    LoyaltyRedeem,
)
from funbookr.services import booking_lifecycle
from funbookr.services.booking_lifecycle import BookingRequest, ParticipantInput
from funbookr.services.gift_cards import apply_gift_card
from funbookr.services.loyalty import apply_loyalty_points
from funbookr.services.razorpay import RazorpayClient

router = APIRouter(prefix="/bookings", tags=["bookings"])


async def _get_booking(db: AsyncSession, booking_id: int, user: User) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None or booking.customer_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    request = BookingRequest(
        activity_id=body.activity_id,
        booking_date=body.booking_date,
        booking_time=body.booking_time,
        participants=body.participants,
        coupon_code=body.coupon_code,
        special_requests=body.special_requests,
        customer_notes=body.customer_notes,
        participant_details=[ParticipantInput(**p.model_dump()) for p in body.participant_details],
    )
    return unwrap(await booking_lifecycle.create_booking(db, user.id, request))


@router.get("", response_model=list[BookingOut])
async def list_my_bookings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Booking)
        .where(Booking.customer_id == user.id)
        .order_by(Booking.booking_date.desc(), Booking.booking_time.desc())
        .limit(50)
    )
    return result.scalars().all()


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _get_booking(db, booking_id, user)


@router.post("/{booking_id}/cancel", response_model=CancellationOut)
async def cancel_booking(
    booking_id: int,
    body: CancelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_gateway),
):
    outcome = unwrap(await booking_lifecycle.cancel_booking(db, gateway, booking_id, user.id, body.reason))
    return CancellationOut(
        booking=BookingOut.model_validate(outcome.booking),
        refund_amount=outcome.refund_amount,
        refund_percentage=outcome.refund_percentage,
        refund_status=outcome.refund_status,
    )


@router.post("/{booking_id}/loyalty", response_model=AppliedDiscountOut)
async def redeem_loyalty_points(
    booking_id: int,
    body: LoyaltyRedeem,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    applied = unwrap(await apply_loyalty_points(db, booking_id, user.id, body.points))
    booking = await db.get(Booking, booking_id)
    return AppliedDiscountOut(applied_amount=applied, booking=BookingOut.model_validate(booking))


@router.post("/{booking_id}/gift-card", response_model=AppliedDiscountOut)
async def redeem_gift_card(
    booking_id: int,
    body: GiftCardApply,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    applied = unwrap(await apply_gift_card(db, booking_id, body.code, user.id))
    booking = await db.get(Booking, booking_id)
    return AppliedDiscountOut(applied_amount=applied, booking=BookingOut.model_validate(booking))


# ---------------------------------------------------------------------------
# Provider actions
# ---------------------------------------------------------------------------


@router.post("/{booking_id}/confirm", response_model=BookingOut)
async def confirm_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await booking_lifecycle.confirm_booking_by_provider(db, booking_id, user.id))


@router.post("/{booking_id}/check-in", response_model=BookingOut)
async def check_in_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await booking_lifecycle.check_in_booking(db, booking_id, user.id))


@router.post("/{booking_id}/complete", response_model=BookingOut)
async def complete_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await booking_lifecycle.complete_booking(db, booking_id, user.id))
