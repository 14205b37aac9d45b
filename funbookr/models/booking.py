"""Booking model.

A booking reserves places on one occurrence of an activity schedule for a
customer. This is the core transactional entity in the system: it carries
the full price breakdown and every discount applied before payment.
"""

import enum
import secrets
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, Enum, ForeignKey, Index, Integer, Numeric, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from funbookr.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from funbookr.models.catalog import Activity
    from funbookr.models.user import User


class BookingStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def new_booking_reference(now: datetime | None = None) -> str:
    """BK + yyyymmdd + 6 upper-case hex characters."""
    now = now or datetime.now(UTC)
    return f"BK{now:%Y%m%d}{secrets.token_hex(3).upper()}"


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    reference: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    activity_id: Mapped[int] = mapped_column(ForeignKey("activities.id"), nullable=False)

    # When
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    booking_time: Mapped[time] = mapped_column(Time, nullable=False)
    participants: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.PENDING,
        nullable=False,
    )

    # Pricing
    price_per_participant: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    coupon_code: Mapped[str | None] = mapped_column(String(50))
    coupon_discount_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    loyalty_points_redeemed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    loyalty_discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    gift_card_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    # Payable amount; commission + provider_payout always equals it
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    provider_payout: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Notes
    special_requests: Mapped[str | None] = mapped_column(Text)
    customer_notes: Mapped[str | None] = mapped_column(Text)

    # Cancellation
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    cancelled_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Lifecycle timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    checked_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Relationships
    activity: Mapped["Activity"] = relationship(lazy="raise")
    customer: Mapped["User"] = relationship(foreign_keys=[customer_id], lazy="raise")
    participant_details: Mapped[list["BookingParticipant"]] = relationship(back_populates="booking", lazy="raise")

    __table_args__ = (
        # Capacity lookups: all bookings on one activity occurrence
        Index("ix_bookings_slot", "activity_id", "booking_date", "booking_time"),
        # My bookings
        Index("ix_bookings_customer", "customer_id", "booking_date"),
    )

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None

    def __repr__(self) -> str:
        return f"<Booking {self.reference} {self.booking_date} {self.booking_time} activity={self.activity_id}>"


class BookingParticipant(TimestampMixin, Base):
    """Named attendee on a booking. Written in the same unit of work as the booking."""

    __tablename__ = "booking_participants"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer)
    gender: Mapped[str | None] = mapped_column(String(20))
    contact_phone: Mapped[str | None] = mapped_column(String(50))

    booking: Mapped["Booking"] = relationship(back_populates="participant_details", lazy="raise")

    def __repr__(self) -> str:
        return f"<BookingParticipant {self.name} booking={self.booking_id}>"
