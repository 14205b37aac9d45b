"""Payment reconciliation: gateway orders, checkout verification, webhooks and refunds.

A booking has at most one Pending payment. When the amount owed changes
the stale attempt is marked failed and a fresh one is created.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.config import settings
from funbookr.models.booking import Booking, BookingStatus
from funbookr.models.payment import Payment, PaymentStatus, new_payment_reference
from funbookr.services.background import dispatch_after_commit
from funbookr.services.booking_state import confirm_booking
from funbookr.services.pricing import ZERO, money
from funbookr.services.razorpay import GatewayError, GatewayPayment, RazorpayClient, verify_payment_signature
from funbookr.services.result import Result, business_rule, external, forbidden, not_found

logger = logging.getLogger(__name__)

SUPERSEDED_REASON = "Superseded by a new payment attempt"


class PaymentStateError(Exception):
    """Raised when a payment is asked to do something its status does not allow."""


@dataclass(frozen=True)
class PaymentSession:
    """What the client needs to open the gateway checkout."""

    payment_id: int | None
    reference: str | None
    amount: Decimal
    currency: str
    payment_required: bool
    gateway: str | None = None
    gateway_order_id: str | None = None
    gateway_key: str | None = None
    callback_url: str | None = None


# ---------------------------------------------------------------------------
# Payment state rules
# ---------------------------------------------------------------------------


def mark_payment_completed(
    payment: Payment,
    gateway_payment_id: str,
    now: datetime,
    details: GatewayPayment | None = None,
) -> None:
    if payment.status == PaymentStatus.COMPLETED:
        raise PaymentStateError(f"Payment {payment.reference} is already completed")
    payment.status = PaymentStatus.COMPLETED
    payment.gateway_payment_id = gateway_payment_id
    payment.paid_at = now
    if details is not None:
        payment.payment_method = details.method
        payment.card_last4 = details.card_last4
        payment.card_brand = details.card_brand
        payment.gateway_response = details.raw


def mark_payment_failed(payment: Payment, reason: str, now: datetime) -> None:
    payment.status = PaymentStatus.FAILED
    payment.failure_reason = reason
    payment.failed_at = now
    payment.retry_attempts += 1


def process_partial_refund(payment: Payment, amount: Decimal, refund_id: str, reason: str | None, now: datetime) -> None:
    """Record a gateway refund against a completed payment."""
    if payment.status not in (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED):
        raise PaymentStateError(f"Cannot refund payment {payment.reference} in status {payment.status}")
    if not refund_id:
        raise PaymentStateError("A gateway refund id is required")
    amount = money(amount)
    if amount <= 0 or amount > payment.refundable_amount:
        raise PaymentStateError(
            f"Refund of {amount} is outside the refundable amount {payment.refundable_amount}"
        )

    payment.refunded_amount = money(payment.refunded_amount + amount)
    payment.refund_transaction_id = refund_id
    payment.refund_reason = reason
    payment.refunded_at = now
    payment.status = (
        PaymentStatus.REFUNDED if payment.refunded_amount >= payment.amount else PaymentStatus.PARTIALLY_REFUNDED
    )


def process_full_refund(payment: Payment, refund_id: str, reason: str | None, now: datetime) -> None:
    process_partial_refund(payment, payment.refundable_amount, refund_id, reason, now)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_payment_for_booking(
    db: AsyncSession, booking_id: int, statuses: tuple[PaymentStatus, ...]
) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.booking_id == booking_id, Payment.status.in_(statuses))
        .order_by(Payment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_payment_by_order(db: AsyncSession, gateway_order_id: str) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.gateway_order_id == gateway_order_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------


async def initiate_payment(
    db: AsyncSession,
    gateway: RazorpayClient,
    booking_id: int,
    user_id: int,
    now: datetime | None = None,
) -> Result[PaymentSession]:
    now = now or datetime.now(UTC)

    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    if booking.customer_id != user_id:
        return forbidden("You can only pay for your own bookings")
    if booking.status == BookingStatus.CANCELLED:
        return business_rule("Cannot pay for a cancelled booking", "booking_cancelled")

    completed = await get_payment_for_booking(db, booking.id, (PaymentStatus.COMPLETED,))
    if completed is not None or booking.is_paid:
        return business_rule("This booking has already been paid", "booking_paid")

    # Fully covered by coupon, points and gift card
    if booking.total_amount <= 0:
        booking.paid_at = now
        if booking.status == BookingStatus.PENDING:
            confirm_booking(booking, now)
        await db.flush()
        dispatch_after_commit(db, "funbookr.send_booking_confirmation", booking.id)
        logger.info("Booking %s fully covered by discounts, confirmed without payment", booking.reference)
        return Result.success(
            PaymentSession(
                payment_id=None,
                reference=None,
                amount=ZERO,
                currency=booking.currency,
                payment_required=False,
            )
        )

    payment = await get_payment_for_booking(db, booking.id, (PaymentStatus.PENDING,))
    if payment is not None and payment.amount != booking.total_amount:
        mark_payment_failed(payment, SUPERSEDED_REASON, now)
        payment = None

    if payment is None:
        payment = Payment(
            booking_id=booking.id,
            reference=new_payment_reference(now),
            amount=booking.total_amount,
            currency=booking.currency,
            gateway=gateway.name,
            status=PaymentStatus.PENDING,
            refunded_amount=ZERO,
            retry_attempts=0,
        )
        db.add(payment)
        await db.flush()

    if payment.gateway_order_id is None:
        try:
            order = await gateway.create_order(payment.amount, payment.currency, booking.reference, now=now)
        except GatewayError:
            logger.exception("Failed to create gateway order for booking %s", booking.reference)
            return external("Failed to initiate payment. Please try again.")
        payment.gateway_order_id = order.id
        await db.flush()

    return Result.success(
        PaymentSession(
            payment_id=payment.id,
            reference=payment.reference,
            amount=payment.amount,
            currency=payment.currency,
            payment_required=True,
            gateway=payment.gateway,
            gateway_order_id=payment.gateway_order_id,
            gateway_key=gateway.key_id,
            callback_url=settings.payment_callback_url,
        )
    )


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


async def _complete_payment(
    db: AsyncSession,
    payment: Payment,
    gateway_payment_id: str,
    now: datetime,
    details: GatewayPayment | None = None,
) -> None:
    """Mark the payment completed and confirm its booking in one unit of work."""
    mark_payment_completed(payment, gateway_payment_id, now, details)

    booking = await db.get(Booking, payment.booking_id)
    booking.paid_at = now
    if booking.status == BookingStatus.PENDING:
        confirm_booking(booking, now)
    await db.flush()

    logger.info("Payment %s completed, booking %s is %s", payment.reference, booking.reference, booking.status)
    dispatch_after_commit(db, "funbookr.send_booking_confirmation", booking.id)


async def verify_client_payment(
    db: AsyncSession,
    order_id: str,
    payment_id: str,
    signature: str,
    user_id: int,
    now: datetime | None = None,
) -> Result[Payment]:
    """Checkout callback from the booking's customer. A bad signature fails the payment."""
    now = now or datetime.now(UTC)

    payment = await get_payment_by_order(db, order_id)
    if payment is None:
        return not_found("Payment not found")
    booking = await db.get(Booking, payment.booking_id)
    if booking is None or booking.customer_id != user_id:
        return forbidden("You can only verify payments for your own bookings")

    if not verify_payment_signature(order_id, payment_id, signature):
        logger.warning("Payment signature mismatch for order %s", order_id)
        if payment.status == PaymentStatus.PENDING:
            mark_payment_failed(payment, "Payment signature verification failed", now)
            await db.flush()
        return external("Payment verification failed")

    if payment.status == PaymentStatus.COMPLETED:
        return Result.success(payment)
    if payment.status != PaymentStatus.PENDING:
        return business_rule(f"Payment cannot be completed from status {payment.status}", "payment_state")

    await _complete_payment(db, payment, payment_id, now)
    return Result.success(payment)


async def _capture_conflict(db: AsyncSession, payment: Payment) -> str | None:
    """Why money captured for this payment cannot be kept, if anything."""
    booking = await db.get(Booking, payment.booking_id)
    if booking.status == BookingStatus.CANCELLED:
        return "booking cancelled"
    if payment.status == PaymentStatus.FAILED and payment.failure_reason == SUPERSEDED_REASON:
        return "superseded payment attempt"
    result = await db.execute(
        select(Payment.id)
        .where(
            Payment.booking_id == booking.id,
            Payment.id != payment.id,
            Payment.status.in_((PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED)),
        )
        .limit(1)
    )
    if result.scalar_one_or_none() is not None:
        return "booking already paid"
    return None


async def handle_webhook_event(db: AsyncSession, event: dict, now: datetime | None = None) -> str:
    """Apply a verified gateway webhook. Returns what happened, for logging.

    A capture that arrives for a cancelled booking or a superseded attempt is
    recorded against its payment but never marks the booking paid. The
    captured money is queued for refund instead.
    """
    now = now or datetime.now(UTC)
    event_type = event.get("event", "")

    if event_type == "refund.created":
        refund = event.get("payload", {}).get("refund", {}).get("entity", {})
        logger.info("Refund %s created for payment %s", refund.get("id"), refund.get("payment_id"))
        return "logged"

    if event_type not in ("payment.captured", "payment.failed"):
        logger.info("Ignoring webhook event %s", event_type)
        return "ignored"

    details = GatewayPayment.from_entity(event["payload"]["payment"]["entity"])
    payment = await get_payment_by_order(db, details.order_id) if details.order_id else None
    if payment is None:
        logger.warning("Webhook %s for unknown order %s", event_type, details.order_id)
        return "ignored"

    if event_type == "payment.captured":
        if payment.status == PaymentStatus.COMPLETED:
            return "duplicate"
        conflict = await _capture_conflict(db, payment)
        if conflict is not None:
            mark_payment_completed(payment, details.id, now, details)
            await db.flush()
            logger.error(
                "Payment %s captured %s %s but cannot be kept (%s), refunding",
                payment.reference,
                payment.currency,
                payment.amount,
                conflict,
            )
            dispatch_after_commit(db, "funbookr.refund_payment", payment.id, conflict)
            return "refund_pending"
        await _complete_payment(db, payment, details.id, now, details)
        return "completed"

    if payment.status != PaymentStatus.PENDING:
        return "ignored"
    mark_payment_failed(payment, details.error_description or "Payment failed", now)
    payment.gateway_payment_id = details.id
    payment.gateway_response = details.raw
    await db.flush()
    logger.info("Payment %s failed: %s", payment.reference, payment.failure_reason)
    return "failed"


async def refund_captured_payment(
    db: AsyncSession,
    gateway: RazorpayClient,
    payment_id: int,
    reason: str,
    now: datetime | None = None,
) -> None:
    """Refund money captured for a payment whose booking cannot use it.

    Gateway errors propagate so the worker logs them.
    """
    now = now or datetime.now(UTC)
    payment = await db.get(Payment, payment_id, with_for_update=True)
    if payment is None or payment.status != PaymentStatus.COMPLETED or not payment.gateway_payment_id:
        logger.warning("Skipping refund of payment %s: nothing captured to refund", payment_id)
        return

    refund = await gateway.create_refund(payment.gateway_payment_id, payment.refundable_amount, reason, now)
    process_full_refund(payment, refund.id, reason, now)
    await db.flush()
    logger.info("Payment %s refunded in full (%s)", payment.reference, reason)
