"""Pricing service for booking totals.

Works out the unit price (base or time-bounded discounted price), the
subtotal for the party, tax and the commission/payout split, and applies
the discount chain. Discounts are applied in a fixed order: coupon, then
loyalty points, then gift card. Each is capped at whatever is still payable
at that point, so the payable amount never goes negative.

All amounts are Decimal rupees rounded half-up to 2 places.
"""

import abc
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar

from funbookr.core.config import settings
from funbookr.models.catalog import Activity

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# 100 points = Rs 25
POINT_VALUE = Decimal("0.25")


def money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_unit_price(activity: Activity, now: datetime | None = None) -> Decimal:
    """Discounted price while its validity window is open, otherwise the base price."""
    if activity.discount_active(now):
        return money(activity.discounted_price)
    return money(activity.price)


def split_total(total: Decimal, commission_rate: Decimal | None = None) -> tuple[Decimal, Decimal]:
    """Split a payable total into (platform commission, provider payout)."""
    rate = settings.commission_rate if commission_rate is None else commission_rate
    commission = money(total * rate)
    return commission, money(total) - commission


@dataclass(frozen=True)
class PriceBreakdown:
    unit_price: Decimal
    participants: int
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    commission_amount: Decimal
    provider_payout: Decimal


def calculate_breakdown(
    unit_price: Decimal,
    participants: int,
    coupon_discount: Decimal = ZERO,
    tax_rate: Decimal | None = None,
    commission_rate: Decimal | None = None,
) -> PriceBreakdown:
    """Price a party of `participants`.

    total = subtotal - coupon discount + tax, where tax is charged on the
    coupon-adjusted subtotal. Commission and payout split the total.
    """
    if participants <= 0:
        raise ValueError("participants must be positive")

    rate = settings.tax_rate if tax_rate is None else tax_rate
    subtotal = money(unit_price * participants)
    discount = CouponDiscount(coupon_discount).capped(subtotal)
    taxable = subtotal - discount
    tax = money(taxable * rate)
    total = taxable + tax
    commission, payout = split_total(total, commission_rate)

    return PriceBreakdown(
        unit_price=money(unit_price),
        participants=participants,
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=total,
        commission_amount=commission,
        provider_payout=payout,
    )


# ---------------------------------------------------------------------------
# Discount chain
# ---------------------------------------------------------------------------


class DiscountSource(abc.ABC):
    """A discount that can be taken against whatever is still payable."""

    order: ClassVar[int]

    @abc.abstractmethod
    def requested(self) -> Decimal: ...

    def capped(self, remaining: Decimal) -> Decimal:
        if remaining <= 0:
            return ZERO
        return money(max(ZERO, min(self.requested(), remaining)))


@dataclass(frozen=True)
class CouponDiscount(DiscountSource):
    amount: Decimal
    order: ClassVar[int] = 1

    def requested(self) -> Decimal:
        return money(self.amount)


@dataclass(frozen=True)
class LoyaltyRedemption(DiscountSource):
    points: int
    order: ClassVar[int] = 2

    def requested(self) -> Decimal:
        return money(self.points * POINT_VALUE)


@dataclass(frozen=True)
class GiftCardDiscount(DiscountSource):
    balance: Decimal
    order: ClassVar[int] = 3

    def requested(self) -> Decimal:
        return money(self.balance)


@dataclass(frozen=True)
class AppliedDiscount:
    source: DiscountSource
    amount: Decimal
    remaining: Decimal


def apply_discount_chain(
    amount: Decimal, sources: list[DiscountSource]
) -> tuple[list[AppliedDiscount], Decimal]:
    """Apply discount sources in order and return (applied steps, final payable).

    Sources must be supplied coupon -> loyalty -> gift card, at most one of each.
    """
    orders = [s.order for s in sources]
    if orders != sorted(set(orders)):
        raise ValueError("Discounts must be applied in the order coupon, loyalty, gift card")

    remaining = money(amount)
    applied: list[AppliedDiscount] = []
    for source in sources:
        taken = source.capped(remaining)
        remaining -= taken
        applied.append(AppliedDiscount(source=source, amount=taken, remaining=remaining))
    return applied, remaining


def reduce_booking_total(booking, amount: Decimal) -> None:
    """Take `amount` off a booking's payable total and re-split commission/payout."""
    booking.total_amount = max(ZERO, money(booking.total_amount - amount))
    booking.commission_amount, booking.provider_payout = split_total(booking.total_amount)
