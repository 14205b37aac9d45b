"""Coupon validation and redemption.

Validation runs its checks in a fixed order and stops at the first failure,
so the customer always sees the most fundamental problem with a code.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.models.catalog import Activity
from funbookr.models.coupon import Coupon, CouponUsage, DiscountType
from funbookr.services.pricing import ZERO, money
from funbookr.services.result import Result, business_rule, not_found, validation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: int
    code: str
    discount_amount: Decimal
    percentage: Decimal
    discount_type: DiscountType


def normalize_code(code: str) -> str:
    return code.strip().upper()


def calculate_discount(coupon: Coupon, order_amount: Decimal) -> Decimal:
    """Percentage coupons are capped at max_discount_amount; every discount is capped at the order."""
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * coupon.discount_value / 100
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    else:
        discount = coupon.discount_value
    return money(max(ZERO, min(discount, order_amount)))


def effective_percentage(coupon: Coupon, discount: Decimal, order_amount: Decimal) -> Decimal:
    if coupon.discount_type == DiscountType.PERCENTAGE:
        return money(coupon.discount_value)
    if order_amount <= 0:
        return ZERO
    return money(discount / order_amount * 100)


async def _user_has_used(db: AsyncSession, coupon_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(CouponUsage.id).where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def validate_coupon(
    db: AsyncSession,
    code: str,
    activity_id: int,
    order_amount: Decimal,
    user_id: int,
    now: datetime | None = None,
) -> Result[CouponQuote]:
    now = now or datetime.now(UTC)
    if not code or not code.strip():
        return validation("Coupon code is required", "coupon_code")

    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    coupon = result.scalar_one_or_none()
    if coupon is None:
        return not_found("Invalid coupon code")

    if not coupon.is_active:
        return business_rule("This coupon is no longer active", "coupon_inactive")

    if now < coupon.valid_from:
        return business_rule(f"This coupon is not valid until {coupon.valid_from:%d %b %Y}", "coupon_not_started")

    if now > coupon.valid_until:
        return business_rule("This coupon has expired", "coupon_expired")

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return business_rule("This coupon has reached its usage limit", "coupon_exhausted")

    if coupon.usage_limit == 1 and await _user_has_used(db, coupon.id, user_id):
        return business_rule("You have already used this coupon", "coupon_already_used")

    if coupon.min_order_amount is not None and order_amount < coupon.min_order_amount:
        return business_rule(
            f"Minimum order amount of {coupon.min_order_amount} required for this coupon", "coupon_min_order"
        )

    activity = await db.get(Activity, activity_id)
    if activity is None:
        return not_found("Activity not found")

    if coupon.applicable_categories and activity.category_id not in coupon.applicable_categories:
        return business_rule("This coupon is not applicable to this activity", "coupon_not_applicable")

    discount = calculate_discount(coupon, order_amount)
    return Result.success(
        CouponQuote(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_amount=discount,
            percentage=effective_percentage(coupon, discount, order_amount),
            discount_type=coupon.discount_type,
        )
    )


async def apply_coupon(
    db: AsyncSession,
    coupon_id: int,
    booking_id: int,
    user_id: int,
    discount_amount: Decimal,
) -> Result[CouponUsage]:
    """Record one use of a coupon against a booking. At most once per booking."""
    existing = await db.execute(select(CouponUsage.id).where(CouponUsage.booking_id == booking_id))
    if existing.scalar_one_or_none() is not None:
        return business_rule("A coupon has already been applied to this booking", "coupon_already_applied")

    result = await db.execute(select(Coupon).where(Coupon.id == coupon_id).with_for_update())
    coupon = result.scalar_one_or_none()
    if coupon is None:
        return not_found("Coupon not found")

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        booking_id=booking_id,
        discount_amount=money(discount_amount),
    )
    db.add(usage)
    coupon.used_count += 1
    await db.flush()

    logger.info("Coupon %s applied to booking %s (discount %s)", coupon.code, booking_id, usage.discount_amount)
    return Result.success(usage)


async def list_available_coupons(db: AsyncSession, user_id: int, now: datetime | None = None) -> list[Coupon]:
    """Active, in-window, not exhausted, and not a single-use coupon this user already redeemed."""
    now = now or datetime.now(UTC)
    used_single_use = (
        select(CouponUsage.coupon_id)
        .join(Coupon, Coupon.id == CouponUsage.coupon_id)
        .where(CouponUsage.user_id == user_id, Coupon.usage_limit == 1)
    )
    result = await db.execute(
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            Coupon.id.not_in(used_single_use),
        )
        .order_by(Coupon.valid_until)
    )
    return list(result.scalars().all())
