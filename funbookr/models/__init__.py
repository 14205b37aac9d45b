"""All models imported here for Alembic autogenerate discovery."""

from funbookr.models.base import Base
from funbookr.models.booking import Booking, BookingParticipant, BookingStatus
from funbookr.models.catalog import Activity, Category, Provider, Schedule
from funbookr.models.coupon import Coupon, CouponUsage, DiscountType
from funbookr.models.gift_card import GiftCard, GiftCardStatus, GiftCardTransaction
from funbookr.models.loyalty import LoyaltyPoint, LoyaltyTier, PointsTransactionType, UserLoyaltyStatus
from funbookr.models.payment import Payment, PaymentStatus
from funbookr.models.review import Review
from funbookr.models.user import User

__all__ = [
    "Base",
    "User",
    "Category",
    "Provider",
    "Activity",
    "Schedule",
    "Booking",
    "BookingParticipant",
    "BookingStatus",
    "Payment",
    "PaymentStatus",
    "Coupon",
    "CouponUsage",
    "DiscountType",
    "GiftCard",
    "GiftCardStatus",
    "GiftCardTransaction",
    "UserLoyaltyStatus",
    "LoyaltyPoint",
    "LoyaltyTier",
    "PointsTransactionType",
    "Review",
]
