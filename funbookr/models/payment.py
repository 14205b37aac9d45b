"""Payment model.

One row per payment attempt against a booking. A booking has at most one
Pending payment at a time; stale attempts are marked failed, never deleted.
"""

import enum
import secrets
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from funbookr.models.base import Base, JSONType, TimestampMixin, UTCDateTime


class PaymentStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


def new_payment_reference(now: datetime | None = None) -> str:
    """PAY + yyyymmdd + 8 upper-case hex characters."""
    now = now or datetime.now(UTC)
    return f"PAY{now:%Y%m%d}{secrets.token_hex(4).upper()}"


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), nullable=False)
    reference: Mapped[str] = mapped_column(String(24), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [x.value for x in e]),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    # Gateway
    gateway: Mapped[str] = mapped_column(String(30), default="razorpay", nullable=False)
    gateway_order_id: Mapped[str | None] = mapped_column(String(100), index=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(100))
    payment_method: Mapped[str | None] = mapped_column(String(30))
    card_last4: Mapped[str | None] = mapped_column(String(4))
    card_brand: Mapped[str | None] = mapped_column(String(30))
    gateway_response: Mapped[dict | None] = mapped_column(JSONType)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Failure
    failed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    failure_reason: Mapped[str | None] = mapped_column(Text)
    retry_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Refunds
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    refund_transaction_id: Mapped[str | None] = mapped_column(String(100))
    refund_reason: Mapped[str | None] = mapped_column(Text)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (Index("ix_payments_booking", "booking_id", "status"),)

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - (self.refunded_amount or Decimal("0"))

    def __repr__(self) -> str:
        return f"<Payment {self.reference} {self.status.value} {self.amount} booking={self.booking_id}>"
