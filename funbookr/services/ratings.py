"""Reviews and rating aggregates.

Average rating and review count are cached on Activity and Provider and
recomputed from the reviews table whenever a review is written.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.booking import Booking, BookingStatus
from funbookr.models.catalog import Activity, Provider
from funbookr.models.review import Review
from funbookr.services.background import dispatch_after_commit
from funbookr.services.result import Result, business_rule, forbidden, not_found, validation

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _round_rating(value) -> Decimal:
    if value is None:
        return Decimal("0.0")
    return Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


async def _aggregate(db: AsyncSession, column) -> tuple[Decimal, int]:
    result = await db.execute(select(func.avg(Review.rating), func.count(Review.id)).where(column))
    average, count = result.one()
    return _round_rating(average), int(count)


async def refresh_activity_rating(db: AsyncSession, activity_id: int) -> None:
    activity = await db.get(Activity, activity_id)
    if activity is None:
        return
    activity.average_rating, activity.total_reviews = await _aggregate(db, Review.activity_id == activity_id)


async def refresh_provider_rating(db: AsyncSession, provider_id: int) -> None:
    provider = await db.get(Provider, provider_id)
    if provider is None:
        return
    provider.average_rating, provider.total_reviews = await _aggregate(db, Review.provider_id == provider_id)


async def refresh_activity_and_provider(db: AsyncSession, activity_id: int) -> None:
    activity = await db.get(Activity, activity_id)
    if activity is None:
        logger.warning("Rating refresh skipped: activity %s not found", activity_id)
        return
    await refresh_activity_rating(db, activity.id)
    await refresh_provider_rating(db, activity.provider_id)
    await db.flush()


async def create_review(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    rating: int,
    title: str | None = None,
    text: str | None = None,
) -> Result[Review]:
    if not MIN_RATING <= rating <= MAX_RATING:
        return validation(f"Rating must be between {MIN_RATING} and {MAX_RATING}", "rating")

    booking = await db.get(Booking, booking_id)
    if booking is None:
        return not_found("Booking not found")
    if booking.customer_id != user_id:
        return forbidden("You can only review your own bookings")
    if booking.status != BookingStatus.COMPLETED:
        return business_rule("You can only review completed bookings", "booking_not_completed")

    existing = await db.execute(select(Review.id).where(Review.booking_id == booking.id))
    if existing.scalar_one_or_none() is not None:
        return business_rule("You have already reviewed this booking", "already_reviewed")

    activity = await db.get(Activity, booking.activity_id)
    review = Review(
        booking_id=booking.id,
        customer_id=user_id,
        activity_id=activity.id,
        provider_id=activity.provider_id,
        rating=rating,
        title=title,
        text=text,
    )
    db.add(review)
    await db.flush()

    await refresh_activity_and_provider(db, activity.id)
    logger.info("Review %s (%s stars) added for activity %s", review.id, rating, activity.id)

    dispatch_after_commit(db, "funbookr.award_review_points", review.id)
    return Result.success(review)
