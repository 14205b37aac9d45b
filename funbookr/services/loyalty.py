"""Loyalty points service.

Point balances are cached on UserLoyaltyStatus for fast reads.
The authoritative audit trail is the loyalty_points table.
All mutations go through this service to keep the cache in sync.

Tier is a pure function of total points earned. Redeeming points lowers
the available balance only, so it never changes the tier.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.booking import Booking, BookingStatus
from funbookr.models.loyalty import LoyaltyPoint, LoyaltyTier, PointsTransactionType, UserLoyaltyStatus
from funbookr.models.review import Review
from funbookr.services.pricing import POINT_VALUE, LoyaltyRedemption, money, reduce_booking_total
from funbookr.services.result import Result, business_rule, forbidden, not_found, validation

logger = logging.getLogger(__name__)

POINTS_PER_RUPEE = 1
FIRST_BOOKING_BONUS = 250
REVIEW_POINTS = 50
DETAILED_REVIEW_POINTS = 100
DETAILED_REVIEW_MIN_CHARS = 100
MIN_REDEMPTION_POINTS = 100
POINTS_EXPIRY_DAYS = 365

# Highest first
TIER_THRESHOLDS: list[tuple[LoyaltyTier, int]] = [
    (LoyaltyTier.PLATINUM, 50_000),
    (LoyaltyTier.GOLD, 20_000),
    (LoyaltyTier.SILVER, 5_000),
    (LoyaltyTier.BRONZE, 0),
]

TIER_DISCOUNT_PERCENTAGE: dict[LoyaltyTier, int] = {
    LoyaltyTier.BRONZE: 0,
    LoyaltyTier.SILVER: 5,
    LoyaltyTier.GOLD: 10,
    LoyaltyTier.PLATINUM: 15,
}

TIER_BENEFITS: dict[LoyaltyTier, list[str]] = {
    LoyaltyTier.BRONZE: ["Earn 1 point per rupee spent", "Birthday bonus points"],
    LoyaltyTier.SILVER: ["5% off every booking", "Priority customer support", "Early access to new activities"],
    LoyaltyTier.GOLD: ["10% off every booking", "Free cancellation up to 24 hours", "Exclusive member events"],
    LoyaltyTier.PLATINUM: ["15% off every booking", "Dedicated concierge", "Complimentary upgrades"],
}


def tier_for_points(total_points: int) -> LoyaltyTier:
    for tier, threshold in TIER_THRESHOLDS:
        if total_points >= threshold:
            return tier
    return LoyaltyTier.BRONZE


def next_tier(tier: LoyaltyTier) -> tuple[LoyaltyTier, int] | None:
    """The tier above `tier` and its threshold, or None at the top."""
    ascending = list(reversed(TIER_THRESHOLDS))
    for index, (candidate, _) in enumerate(ascending):
        if candidate == tier and index + 1 < len(ascending):
            return ascending[index + 1]
    return None


def points_value(points: int) -> Decimal:
    return money(points * POINT_VALUE)


async def _get_status(db: AsyncSession, user_id: int, *, for_update: bool = False) -> UserLoyaltyStatus | None:
    stmt = select(UserLoyaltyStatus).where(UserLoyaltyStatus.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def award_points(
    db: AsyncSession,
    user_id: int,
    points: int,
    reference_type: str | None,
    reference_id: int | None,
    description: str,
    now: datetime | None = None,
) -> Result[LoyaltyPoint]:
    """Credit points, recompute the tier and write an expiring ledger entry.

    Uses SELECT ... FOR UPDATE on the status row to prevent lost updates.
    """
    if points <= 0:
        return validation("Points to award must be positive", "points")
    now = now or datetime.now(UTC)

    status = await _get_status(db, user_id, for_update=True)
    if status is None:
        status = UserLoyaltyStatus(
            user_id=user_id,
            total_points=0,
            available_points=0,
            lifetime_points=0,
            current_tier=LoyaltyTier.BRONZE,
        )
        db.add(status)

    status.total_points += points
    status.available_points += points
    status.lifetime_points += points

    tier = tier_for_points(status.total_points)
    if tier != status.current_tier:
        logger.info("User %s moved from %s to %s", user_id, status.current_tier, tier)
        status.current_tier = tier
        status.tier_upgraded_at = now

    entry = LoyaltyPoint(
        user_id=user_id,
        points=points,
        transaction_type=PointsTransactionType.EARNED,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        expiry_date=now + timedelta(days=POINTS_EXPIRY_DAYS),
    )
    db.add(entry)
    await db.flush()
    return Result.success(entry)


async def redeem_points(
    db: AsyncSession,
    user_id: int,
    points: int,
    booking_id: int,
) -> Result[Decimal]:
    """Debit available points for a booking and return their rupee value."""
    if points < MIN_REDEMPTION_POINTS:
        return business_rule(
            f"Minimum {MIN_REDEMPTION_POINTS} points required for redemption", "points_below_minimum"
        )

    status = await _get_status(db, user_id, for_update=True)
    if status is None:
        return business_rule("You have no loyalty points to redeem", "insufficient_points")

    if points > status.available_points:
        return business_rule(
            f"Insufficient points. Available: {status.available_points}, requested: {points}",
            "insufficient_points",
        )

    status.available_points -= points
    db.add(
        LoyaltyPoint(
            user_id=user_id,
            points=-points,
            transaction_type=PointsTransactionType.REDEEMED,
            reference_type="booking",
            reference_id=booking_id,
            description=f"Redeemed for booking #{booking_id}",
        )
    )
    await db.flush()
    return Result.success(points_value(points))


async def apply_loyalty_points(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    points: int,
) -> Result[Decimal]:
    """Redeem points against a booking's payable total.

    Only as many points as are needed to cover the total are redeemed.
    Returns the rupee discount applied.
    """
    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    if booking.customer_id != user_id:
        return forbidden("You can only apply loyalty points to your own bookings")
    if booking.status == BookingStatus.CANCELLED:
        return business_rule("Cannot apply loyalty points to a cancelled booking", "booking_cancelled")
    if booking.is_paid:
        return business_rule("Cannot apply loyalty points to already paid booking", "booking_paid")
    if booking.loyalty_points_redeemed:
        return business_rule("Loyalty points have already been applied to this booking", "loyalty_already_applied")
    if booking.gift_card_amount > 0:
        return business_rule("Loyalty points must be applied before a gift card", "discount_order")
    if booking.total_amount <= 0:
        return business_rule("Nothing left to pay on this booking", "nothing_payable")

    needed = math.ceil(booking.total_amount / POINT_VALUE)
    if needed < MIN_REDEMPTION_POINTS <= points:
        return business_rule(
            f"Booking total is too small to redeem points. At least {MIN_REDEMPTION_POINTS} points "
            f"(Rs {points_value(MIN_REDEMPTION_POINTS)}) must be redeemable",
            "payable_below_minimum",
        )
    points_to_use = min(points, needed)

    redeemed = await redeem_points(db, user_id, points_to_use, booking.id)
    if not redeemed.ok:
        return redeemed

    discount = LoyaltyRedemption(points_to_use).capped(booking.total_amount)
    booking.loyalty_points_redeemed = points_to_use
    booking.loyalty_discount = discount
    reduce_booking_total(booking, discount)
    await db.flush()

    logger.info("Booking %s: %s points redeemed for %s", booking.reference, points_to_use, discount)
    return Result.success(discount)


async def _already_awarded(db: AsyncSession, user_id: int, reference_id: int, *reference_types: str) -> bool:
    result = await db.execute(
        select(LoyaltyPoint.id)
        .where(
            LoyaltyPoint.user_id == user_id,
            LoyaltyPoint.transaction_type == PointsTransactionType.EARNED,
            LoyaltyPoint.reference_type.in_(reference_types),
            LoyaltyPoint.reference_id == reference_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def award_booking_points(db: AsyncSession, booking_id: int, now: datetime | None = None) -> int:
    """Award points for a completed booking: 1 per rupee paid, plus a first-booking bonus.

    Safe to run twice for the same booking. Returns the number of points awarded.
    """
    booking = await db.get(Booking, booking_id)
    if booking is None or booking.status != BookingStatus.COMPLETED:
        logger.warning("Skipping loyalty award for booking %s: not completed", booking_id)
        return 0
    # A zero-total booking writes no "booking" row, only the bonus
    if await _already_awarded(db, booking.customer_id, booking.id, "booking", "first_booking"):
        return 0

    awarded = 0
    points = math.floor(booking.total_amount * POINTS_PER_RUPEE)
    if points > 0:
        await award_points(
            db, booking.customer_id, points, "booking", booking.id, f"Booking {booking.reference}", now
        )
        awarded += points

    prior = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.customer_id == booking.customer_id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.id != booking.id,
        )
    )
    if prior.scalar_one() == 0:
        await award_points(
            db, booking.customer_id, FIRST_BOOKING_BONUS, "first_booking", booking.id, "First booking bonus", now
        )
        awarded += FIRST_BOOKING_BONUS

    logger.info("Awarded %s points to user %s for booking %s", awarded, booking.customer_id, booking.reference)
    return awarded


async def award_review_points(db: AsyncSession, review_id: int, now: datetime | None = None) -> int:
    """50 points for a review, 100 when the text runs past 100 characters."""
    review = await db.get(Review, review_id)
    if review is None:
        logger.warning("Skipping review points: review %s not found", review_id)
        return 0
    if await _already_awarded(db, review.customer_id, review.id, "review"):
        return 0

    detailed = len(review.text or "") > DETAILED_REVIEW_MIN_CHARS
    points = DETAILED_REVIEW_POINTS if detailed else REVIEW_POINTS
    await award_points(db, review.customer_id, points, "review", review.id, "Review submitted", now)
    return points


@dataclass
class LoyaltyStatusView:
    tier: LoyaltyTier
    total_points: int
    available_points: int
    lifetime_points: int
    discount_percentage: int
    benefits: list[str] = field(default_factory=list)
    next_tier: LoyaltyTier | None = None
    points_to_next_tier: int | None = None
    tier_upgraded_at: datetime | None = None


async def get_loyalty_status(db: AsyncSession, user_id: int) -> LoyaltyStatusView:
    status = await _get_status(db, user_id)
    total = status.total_points if status else 0
    tier = status.current_tier if status else LoyaltyTier.BRONZE

    upcoming = next_tier(tier)
    return LoyaltyStatusView(
        tier=tier,
        total_points=total,
        available_points=status.available_points if status else 0,
        lifetime_points=status.lifetime_points if status else 0,
        discount_percentage=TIER_DISCOUNT_PERCENTAGE[tier],
        benefits=TIER_BENEFITS[tier],
        next_tier=upcoming[0] if upcoming else None,
        points_to_next_tier=max(upcoming[1] - total, 0) if upcoming else None,
        tier_upgraded_at=status.tier_upgraded_at if status else None,
    )


async def get_loyalty_history(db: AsyncSession, user_id: int, limit: int = 50) -> list[LoyaltyPoint]:
    result = await db.execute(
        select(LoyaltyPoint)
        .where(LoyaltyPoint.user_id == user_id)
        .order_by(LoyaltyPoint.created_at.desc(), LoyaltyPoint.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def calculate_tier_discount(db: AsyncSession, user_id: int, amount: Decimal) -> Decimal:
    status = await _get_status(db, user_id)
    tier = status.current_tier if status else LoyaltyTier.BRONZE
    return money(amount * TIER_DISCOUNT_PERCENTAGE[tier] / 100)
