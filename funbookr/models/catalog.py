"""Catalog models: categories, providers, activities and their weekly schedules.

An Activity is something a Provider sells (a trek, a workshop, a class).
Each Schedule is a recurring weekly window with a fixed participant capacity.
"""

from datetime import UTC, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from funbookr.models.base import Base, JSONType, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from funbookr.models.user import User


class Category(TimestampMixin, Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.slug}>"


class Provider(TimestampMixin, Base):
    """A business selling activities. Rating aggregates are cached here."""

    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Aggregates (maintained by the rating service)
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 1), default=Decimal("0"), nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user: Mapped["User"] = relationship(lazy="raise")

    def __repr__(self) -> str:
        return f"<Provider {self.business_name}>"


class Activity(TimestampMixin, Base):
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Pricing (per participant)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discounted_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    discount_valid_from: Mapped[datetime | None] = mapped_column(UTCDateTime())
    discount_valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime())
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Capacity
    min_participants: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)

    # Aggregates
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 1), default=Decimal("0"), nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    provider: Mapped["Provider"] = relationship(lazy="raise")
    category: Mapped["Category"] = relationship(lazy="raise")
    schedules: Mapped[list["Schedule"]] = relationship(back_populates="activity", lazy="raise")

    __table_args__ = (Index("ix_activities_provider", "provider_id"), Index("ix_activities_category", "category_id"))

    def discount_active(self, now: datetime | None = None) -> bool:
        """True when a discounted price is set and `now` falls inside its window."""
        if self.discounted_price is None:
            return False
        now = now or datetime.now(UTC)
        if self.discount_valid_from is not None and now < self.discount_valid_from:
            return False
        if self.discount_valid_until is not None and now > self.discount_valid_until:
            return False
        return True

    def __repr__(self) -> str:
        return f"<Activity {self.id} {self.title!r}>"


class Schedule(TimestampMixin, Base):
    """A recurring weekly window. days_of_week uses 0 = Monday ... 6 = Sunday."""

    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(primary_key=True)
    activity_id: Mapped[int] = mapped_column(ForeignKey("activities.id"), nullable=False)
    days_of_week: Mapped[list[int]] = mapped_column(JSONType, default=list, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    available_spots: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    activity: Mapped["Activity"] = relationship(back_populates="schedules", lazy="raise")

    __table_args__ = (Index("ix_schedules_activity", "activity_id"),)

    def covers(self, weekday: int, at: time) -> bool:
        return weekday in (self.days_of_week or []) and self.start_time <= at <= self.end_time

    def __repr__(self) -> str:
        return f"<Schedule activity={self.activity_id} {self.days_of_week} {self.start_time}-{self.end_time}>"
