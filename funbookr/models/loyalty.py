"""Loyalty models.

Point balances are cached on UserLoyaltyStatus for fast reads.
The authoritative audit trail is the loyalty_points ledger.
"""

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from funbookr.models.base import Base, TimestampMixin, UTCDateTime


class LoyaltyTier(enum.StrEnum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class PointsTransactionType(enum.StrEnum):
    EARNED = "earned"
    REDEEMED = "redeemed"


class UserLoyaltyStatus(TimestampMixin, Base):
    __tablename__ = "user_loyalty_status"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_tier: Mapped[LoyaltyTier] = mapped_column(
        Enum(LoyaltyTier, name="loyalty_tier", values_callable=lambda e: [x.value for x in e]),
        default=LoyaltyTier.BRONZE,
        nullable=False,
    )
    tier_upgraded_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    def __repr__(self) -> str:
        return f"<UserLoyaltyStatus user={self.user_id} {self.current_tier.value} available={self.available_points}>"


class LoyaltyPoint(TimestampMixin, Base):
    """A single points movement: positive means earned, negative means redeemed."""

    __tablename__ = "loyalty_points"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[PointsTransactionType] = mapped_column(
        Enum(PointsTransactionType, name="points_transaction_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    reference_type: Mapped[str | None] = mapped_column(String(30))  # "booking", "review", "first_booking"
    reference_id: Mapped[int | None] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (Index("ix_loyalty_points_user", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<LoyaltyPoint {self.transaction_type.value} {self.points} user={self.user_id}>"
