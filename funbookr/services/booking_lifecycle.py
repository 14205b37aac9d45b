"""Booking use cases: create, cancel, confirm, check in and complete.

Each function checks who is acting and returns a Result; the legal moves
themselves live in booking_state. Callers own the transaction: a failed
Result must not be committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.booking import Booking, BookingParticipant, BookingStatus, new_booking_reference
from funbookr.models.catalog import Activity, Provider
from funbookr.models.payment import PaymentStatus
from funbookr.services.availability import check_availability
from funbookr.services.background import dispatch_after_commit
from funbookr.services.booking_state import (
    calculate_refund,
    can_be_cancelled,
    can_transition,
    event_start,
    refund_percentage,
    slot_start,
    time_until_start,
    transition,
)
from funbookr.services.coupons import apply_coupon, validate_coupon
from funbookr.services.payments import (
    PaymentStateError,
    get_payment_for_booking,
    process_full_refund,
    process_partial_refund,
)
from funbookr.services.pricing import ZERO, calculate_breakdown, effective_unit_price, money
from funbookr.services.razorpay import GatewayError, RazorpayClient
from funbookr.services.result import Result, business_rule, external, forbidden, not_found, validation

logger = logging.getLogger(__name__)


@dataclass
class ParticipantInput:
    name: str
    age: int | None = None
    gender: str | None = None
    contact_phone: str | None = None


@dataclass
class BookingRequest:
    activity_id: int
    booking_date: date
    booking_time: time
    participants: int
    coupon_code: str | None = None
    special_requests: str | None = None
    customer_notes: str | None = None
    participant_details: list[ParticipantInput] = field(default_factory=list)


@dataclass(frozen=True)
class CancellationOutcome:
    booking: Booking
    refund_amount: Decimal
    refund_percentage: int
    refund_status: str


async def create_booking(
    db: AsyncSession,
    user_id: int,
    request: BookingRequest,
    now: datetime | None = None,
) -> Result[Booking]:
    """Price and persist a Pending booking, recording any coupon used."""
    now = now or datetime.now(UTC)

    if request.participants <= 0:
        return validation("Number of participants must be at least 1", "participants")

    activity = await db.get(Activity, request.activity_id)
    if activity is None or not activity.is_active:
        return not_found("Activity not found or not bookable")

    if not activity.min_participants <= request.participants <= activity.max_participants:
        return validation(
            f"This activity requires between {activity.min_participants} and "
            f"{activity.max_participants} participants",
            "participant_bounds",
        )

    if len(request.participant_details) > request.participants:
        return validation("More participant details than participants", "participant_details")

    if slot_start(request.booking_date, request.booking_time) <= now:
        return validation("Cannot book a slot in the past", "past_booking")

    availability = await check_availability(
        db, activity.id, request.booking_date, request.booking_time, request.participants
    )
    if not availability.ok:
        return Result.from_failure(availability.error)

    unit_price = effective_unit_price(activity, now)
    subtotal = money(unit_price * request.participants)

    quote = None
    if request.coupon_code:
        coupon = await validate_coupon(db, request.coupon_code, activity.id, subtotal, user_id, now)
        if not coupon.ok:
            return Result.from_failure(coupon.error)
        quote = coupon.value

    breakdown = calculate_breakdown(unit_price, request.participants, quote.discount_amount if quote else ZERO)

    booking = Booking(
        reference=new_booking_reference(now),
        customer_id=user_id,
        activity_id=activity.id,
        booking_date=request.booking_date,
        booking_time=request.booking_time,
        participants=request.participants,
        status=BookingStatus.PENDING,
        price_per_participant=breakdown.unit_price,
        subtotal=breakdown.subtotal,
        discount_amount=breakdown.discount_amount,
        coupon_code=quote.code if quote else None,
        coupon_discount_percentage=quote.percentage if quote else None,
        tax_amount=breakdown.tax_amount,
        total_amount=breakdown.total_amount,
        commission_amount=breakdown.commission_amount,
        provider_payout=breakdown.provider_payout,
        loyalty_points_redeemed=0,
        loyalty_discount=ZERO,
        gift_card_amount=ZERO,
        currency=activity.currency,
        special_requests=request.special_requests,
        customer_notes=request.customer_notes,
    )
    db.add(booking)
    await db.flush()

    for person in request.participant_details:
        db.add(
            BookingParticipant(
                booking_id=booking.id,
                name=person.name,
                age=person.age,
                gender=person.gender,
                contact_phone=person.contact_phone,
            )
        )

    if quote is not None:
        applied = await apply_coupon(db, quote.coupon_id, booking.id, user_id, breakdown.discount_amount)
        if not applied.ok:
            return Result.from_failure(applied.error)

    await db.flush()
    logger.info(
        "Booking %s created: activity %s on %s at %s for %s, total %s",
        booking.reference,
        activity.id,
        booking.booking_date,
        booking.booking_time,
        booking.participants,
        booking.total_amount,
    )
    return Result.success(booking)


async def cancel_booking(
    db: AsyncSession,
    gateway: RazorpayClient,
    booking_id: int,
    user_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> Result[CancellationOutcome]:
    """Customer cancellation with the tiered refund policy.

    The gateway refund is issued before any state changes, so a gateway
    failure leaves the booking and payment untouched.
    """
    now = now or datetime.now(UTC)

    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    if booking.customer_id != user_id:
        return forbidden("You can only cancel your own bookings")
    if not can_be_cancelled(booking, now):
        if booking.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            return business_rule("Booking cannot be cancelled after the activity has started", "already_started")
        return business_rule(f"Booking cannot be cancelled. Current status: {booking.status}", "not_cancellable")

    hours = time_until_start(booking, now).total_seconds() / 3600
    percentage = refund_percentage(hours) if booking.is_paid else 0
    refund = calculate_refund(booking, now)
    refund_status = "No refund applicable"

    if refund > 0:
        payment = await get_payment_for_booking(
            db, booking.id, (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED)
        )
        if payment is not None and payment.gateway_payment_id:
            refund = min(refund, payment.refundable_amount)
            try:
                gateway_refund = await gateway.create_refund(payment.gateway_payment_id, refund, reason, now)
            except GatewayError:
                logger.exception("Refund failed for booking %s", booking.reference)
                return external("Failed to process refund. Please try again or contact support.")

            try:
                if refund >= payment.refundable_amount:
                    process_full_refund(payment, gateway_refund.id, reason, now)
                else:
                    process_partial_refund(payment, refund, gateway_refund.id, reason, now)
            except PaymentStateError as exc:
                logger.error("Refund %s could not be recorded: %s", gateway_refund.id, exc)
                return business_rule(str(exc), "refund_state")
            refund_status = f"Refund of {booking.currency} {refund} ({percentage}%) initiated"
        else:
            refund = ZERO
            refund_status = "No gateway payment to refund"

    transition(booking, BookingStatus.CANCELLED, now)
    booking.cancellation_reason = reason
    booking.cancelled_by = user_id
    booking.refund_amount = refund
    await db.flush()

    logger.info("Booking %s cancelled by user %s, refund %s", booking.reference, user_id, refund)
    return Result.success(
        CancellationOutcome(
            booking=booking,
            refund_amount=refund,
            refund_percentage=percentage,
            refund_status=refund_status,
        )
    )


async def _get_provider_booking(db: AsyncSession, booking_id: int, provider_user_id: int) -> Result[Booking]:
    """Load a booking the acting user may manage as the activity's provider."""
    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    activity = await db.get(Activity, booking.activity_id)
    provider = await db.get(Provider, activity.provider_id)
    if provider is None or provider.user_id != provider_user_id:
        return forbidden("Only the activity provider can manage this booking")
    return Result.success(booking)


async def confirm_booking_by_provider(
    db: AsyncSession, booking_id: int, provider_user_id: int, now: datetime | None = None
) -> Result[Booking]:
    found = await _get_provider_booking(db, booking_id, provider_user_id)
    if not found.ok:
        return found
    booking = found.value
    if not can_transition(booking, BookingStatus.CONFIRMED):
        return business_rule(f"Booking cannot be confirmed. Current status: {booking.status}", "not_confirmable")

    transition(booking, BookingStatus.CONFIRMED, now)
    await db.flush()
    dispatch_after_commit(db, "funbookr.send_booking_confirmation", booking.id)
    return Result.success(booking)


async def check_in_booking(
    db: AsyncSession, booking_id: int, provider_user_id: int, now: datetime | None = None
) -> Result[Booking]:
    found = await _get_provider_booking(db, booking_id, provider_user_id)
    if not found.ok:
        return found
    booking = found.value
    if not can_transition(booking, BookingStatus.CHECKED_IN):
        return business_rule(f"Booking cannot be checked in. Current status: {booking.status}", "not_checkable")

    transition(booking, BookingStatus.CHECKED_IN, now)
    await db.flush()
    logger.info("Booking %s checked in", booking.reference)
    return Result.success(booking)


async def complete_booking(
    db: AsyncSession, booking_id: int, provider_user_id: int, now: datetime | None = None
) -> Result[Booking]:
    """Mark a booking completed once the activity has started.

    Loyalty points and rating aggregates are updated in the background
    after commit; their failure never undoes the completion.
    """
    now = now or datetime.now(UTC)
    found = await _get_provider_booking(db, booking_id, provider_user_id)
    if not found.ok:
        return found
    booking = found.value
    if not can_transition(booking, BookingStatus.COMPLETED):
        return business_rule(f"Booking cannot be completed. Current status: {booking.status}", "not_completable")
    if now < event_start(booking):
        return business_rule("Booking cannot be completed before the activity starts", "not_started")

    transition(booking, BookingStatus.COMPLETED, now)
    await db.execute(
        update(Activity)
        .where(Activity.id == booking.activity_id)
        .values(total_bookings=Activity.total_bookings + 1)
    )
    await db.flush()

    dispatch_after_commit(db, "funbookr.award_booking_points", booking.id)
    dispatch_after_commit(db, "funbookr.refresh_ratings", booking.activity_id)
    logger.info("Booking %s completed", booking.reference)
    return Result.success(booking)
