"""Gift card models.

The balance is cached on GiftCard for fast reads.
The authoritative audit trail is the gift_card_transactions ledger.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from funbookr.models.base import Base, TimestampMixin, UTCDateTime


class GiftCardStatus(enum.StrEnum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class GiftCard(TimestampMixin, Base):
    __tablename__ = "gift_cards"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    status: Mapped[GiftCardStatus] = mapped_column(
        Enum(GiftCardStatus, name="gift_card_status", values_callable=lambda e: [x.value for x in e]),
        default=GiftCardStatus.ACTIVE,
        nullable=False,
    )

    purchased_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    recipient_email: Mapped[str | None] = mapped_column(String(254), index=True)
    recipient_name: Mapped[str | None] = mapped_column(String(200))
    message: Mapped[str | None] = mapped_column(Text)

    purchased_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    redeemed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    redeemed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    def __repr__(self) -> str:
        return f"<GiftCard {self.code} {self.status.value} balance={self.balance}>"


class GiftCardTransaction(TimestampMixin, Base):
    """One consumption of a gift card balance. Append-only."""

    __tablename__ = "gift_card_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    gift_card_id: Mapped[int] = mapped_column(ForeignKey("gift_cards.id"), nullable=False)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    __table_args__ = (Index("ix_gift_card_txn_card", "gift_card_id"),)

    def __repr__(self) -> str:
        return f"<GiftCardTransaction card={self.gift_card_id} {self.amount} balance_after={self.balance_after}>"
