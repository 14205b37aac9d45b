"""Gift card service.

Balance is cached on GiftCard; every consumption appends a
GiftCardTransaction recording the balance left afterwards. Each application
re-reads the live balance under a row lock so a card is never over-consumed.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.booking import Booking, BookingStatus
from funbookr.models.gift_card import GiftCard, GiftCardStatus, GiftCardTransaction
from funbookr.models.user import User
from funbookr.services.background import dispatch_after_commit
from funbookr.services.pricing import GiftCardDiscount, money, reduce_booking_total
from funbookr.services.result import Result, business_rule, forbidden, not_found, validation

logger = logging.getLogger(__name__)

MIN_AMOUNT = Decimal("500")
MAX_AMOUNT = Decimal("50000")
VALIDITY_DAYS = 365


@dataclass(frozen=True)
class GiftCardQuote:
    code: str
    balance: Decimal
    expires_at: datetime


@dataclass(frozen=True)
class GiftCardBalance:
    code: str
    original_amount: Decimal
    balance: Decimal
    currency: str
    status: GiftCardStatus
    expires_at: datetime
    days_until_expiry: int
    is_expired: bool


def generate_code() -> str:
    """FB-####-####-#### with the first group never starting with zero."""
    groups = [str(1000 + secrets.randbelow(9000))]
    groups += [f"{secrets.randbelow(10000):04d}" for _ in range(2)]
    return "FB-" + "-".join(groups)


async def _unique_code(db: AsyncSession) -> str:
    while True:
        code = generate_code()
        result = await db.execute(select(GiftCard.id).where(GiftCard.code == code))
        if result.scalar_one_or_none() is None:
            return code


async def create_gift_card(
    db: AsyncSession,
    amount: Decimal,
    purchaser_id: int,
    recipient_email: str | None = None,
    recipient_name: str | None = None,
    message: str | None = None,
    currency: str = "INR",
    now: datetime | None = None,
) -> Result[GiftCard]:
    if amount < MIN_AMOUNT or amount > MAX_AMOUNT:
        return validation(f"Gift card amount must be between {MIN_AMOUNT} and {MAX_AMOUNT}", "amount")
    now = now or datetime.now(UTC)

    card = GiftCard(
        code=await _unique_code(db),
        original_amount=money(amount),
        balance=money(amount),
        currency=currency,
        status=GiftCardStatus.ACTIVE,
        purchased_by=purchaser_id,
        recipient_email=recipient_email.strip().lower() if recipient_email else None,
        recipient_name=recipient_name,
        message=message,
        purchased_at=now,
        expires_at=now + timedelta(days=VALIDITY_DAYS),
    )
    db.add(card)
    await db.flush()
    logger.info("Gift card %s created for %s by user %s", card.code, card.original_amount, purchaser_id)

    if card.recipient_email:
        dispatch_after_commit(db, "funbookr.send_gift_card_email", card.id)

    return Result.success(card)


def _expire_if_overdue(card: GiftCard, now: datetime) -> None:
    if card.status == GiftCardStatus.ACTIVE and card.expires_at < now:
        card.status = GiftCardStatus.EXPIRED
        logger.info("Gift card %s expired on %s", card.code, card.expires_at)


def _check_usable(card: GiftCard | None, now: datetime) -> Result | None:
    """Failure for an unusable card, or None when it can be spent."""
    if card is None:
        return not_found("Invalid gift card code")
    _expire_if_overdue(card, now)
    if card.status == GiftCardStatus.CANCELLED:
        return business_rule("This gift card has been cancelled", "gift_card_cancelled")
    if card.status == GiftCardStatus.EXPIRED:
        return business_rule("This gift card has expired", "gift_card_expired")
    if card.balance <= 0:
        return business_rule("This gift card has no remaining balance", "gift_card_empty")
    return None


async def _get_card(db: AsyncSession, code: str, *, for_update: bool = False) -> GiftCard | None:
    stmt = select(GiftCard).where(GiftCard.code == code.strip().upper())
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def validate_gift_card(db: AsyncSession, code: str, now: datetime | None = None) -> Result[GiftCardQuote]:
    now = now or datetime.now(UTC)
    card = await _get_card(db, code)
    failure = _check_usable(card, now)
    await db.flush()
    if failure is not None:
        return failure
    return Result.success(GiftCardQuote(code=card.code, balance=card.balance, expires_at=card.expires_at))


async def apply_gift_card(
    db: AsyncSession,
    booking_id: int,
    code: str,
    user_id: int,
    now: datetime | None = None,
) -> Result[Decimal]:
    """Spend up to the booking's payable total from a gift card. Returns the amount applied."""
    now = now or datetime.now(UTC)

    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    if booking.customer_id != user_id:
        return forbidden("You can only apply gift cards to your own bookings")
    if booking.status == BookingStatus.CANCELLED:
        return business_rule("Cannot apply gift card to a cancelled booking", "booking_cancelled")
    if booking.is_paid:
        return business_rule("Cannot apply gift card to already paid booking", "booking_paid")
    if booking.total_amount <= 0:
        return business_rule("Nothing left to pay on this booking", "nothing_payable")

    card = await _get_card(db, code, for_update=True)
    failure = _check_usable(card, now)
    if failure is not None:
        await db.flush()
        return failure

    amount = GiftCardDiscount(card.balance).capped(booking.total_amount)
    card.balance = money(card.balance - amount)
    if card.balance == 0:
        card.status = GiftCardStatus.REDEEMED
        card.redeemed_at = now
        card.redeemed_by = user_id

    db.add(
        GiftCardTransaction(
            gift_card_id=card.id,
            booking_id=booking.id,
            amount=amount,
            balance_after=card.balance,
        )
    )
    booking.gift_card_amount = money(booking.gift_card_amount + amount)
    reduce_booking_total(booking, amount)
    await db.flush()

    logger.info("Gift card %s: %s applied to booking %s, balance %s", card.code, amount, booking.reference, card.balance)
    return Result.success(amount)


async def get_gift_card_balance(db: AsyncSession, code: str, now: datetime | None = None) -> Result[GiftCardBalance]:
    now = now or datetime.now(UTC)
    card = await _get_card(db, code)
    if card is None:
        return not_found("Invalid gift card code")
    _expire_if_overdue(card, now)
    await db.flush()

    return Result.success(
        GiftCardBalance(
            code=card.code,
            original_amount=card.original_amount,
            balance=card.balance,
            currency=card.currency,
            status=card.status,
            expires_at=card.expires_at,
            days_until_expiry=max((card.expires_at - now).days, 0),
            is_expired=card.status == GiftCardStatus.EXPIRED,
        )
    )


async def list_user_gift_cards(db: AsyncSession, user_id: int) -> list[GiftCard]:
    """Cards the user bought plus cards sent to their email address."""
    user = await db.get(User, user_id)
    conditions = [GiftCard.purchased_by == user_id]
    if user is not None:
        conditions.append(GiftCard.recipient_email == user.email.lower())

    result = await db.execute(select(GiftCard).where(or_(*conditions)).order_by(GiftCard.purchased_at.desc()))
    return list(result.scalars().all())


async def cancel_gift_card(db: AsyncSession, code: str, user_id: int | None = None) -> Result[GiftCard]:
    """Cancel a card. When `user_id` is given only its purchaser may do so."""
    card = await _get_card(db, code, for_update=True)
    if card is None:
        return not_found("Invalid gift card code")
    if user_id is not None and card.purchased_by != user_id:
        return forbidden("Only the purchaser can cancel this gift card")
    if card.status == GiftCardStatus.REDEEMED:
        return business_rule("Cannot cancel a fully redeemed gift card", "gift_card_redeemed")

    card.status = GiftCardStatus.CANCELLED
    await db.flush()
    logger.info("Gift card %s cancelled with balance %s", card.code, card.balance)
    return Result.success(card)
