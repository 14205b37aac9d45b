"""Shared test fixtures.

Each test gets a fresh in-memory SQLite database. Celery dispatch is
patched out so nothing tries to reach a broker.
"""

from datetime import UTC, date, datetime, time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from funbookr.models import (
    Activity,
    Base,
    Booking,
    BookingStatus,
    Category,
    Payment,
    PaymentStatus,
    Provider,
    Schedule,
    User,
)
from funbookr.models.booking import new_booking_reference
from funbookr.services.razorpay import RazorpayClient

# Monday 5 Jan 2026, 10:00 in Asia/Kolkata
NOW = datetime(2026, 1, 5, 4, 30, tzinfo=UTC)
# Saturday of the same week
EVENT_DATE = date(2026, 1, 10)
EVENT_TIME = time(10, 0)

RAZORPAY_BASE = "https://api.razorpay.com/v1"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def sent_tasks():
    """Every Celery send_task call made during the test."""
    with patch("funbookr.services.background.celery_app.send_task") as send_task:
        yield send_task


@pytest.fixture(autouse=True)
def _razorpay_secrets():
    with (
        patch("funbookr.core.config.settings.razorpay_key_secret", KEY_SECRET),
        patch("funbookr.core.config.settings.razorpay_webhook_secret", WEBHOOK_SECRET),
        patch("funbookr.core.config.settings.tax_rate", Decimal("0")),
        patch("funbookr.core.config.settings.commission_rate", Decimal("0.10")),
    ):
        yield


@pytest.fixture
def gateway():
    return RazorpayClient(key_id="rzp_test_key", key_secret=KEY_SECRET, base_url=f"{RAZORPAY_BASE}/")


@pytest.fixture
async def catalog(db):
    """A customer, a provider with one Rs 1000 activity, and a daily 09:00-18:00 schedule for 10."""
    customer = User(email="asha@example.com", first_name="Asha", last_name="Iyer")
    other = User(email="ravi@example.com", first_name="Ravi", last_name="Menon")
    owner = User(email="owner@example.com", first_name="Meera", last_name="Kulkarni")
    db.add_all([customer, other, owner])
    await db.flush()

    category = Category(name="Adventure", slug="adventure")
    provider = Provider(user_id=owner.id, business_name="Sahyadri Trails")
    db.add_all([category, provider])
    await db.flush()

    activity = Activity(
        provider_id=provider.id,
        category_id=category.id,
        title="Sunrise Trek",
        price=Decimal("1000.00"),
        min_participants=1,
        max_participants=10,
        duration_minutes=180,
    )
    db.add(activity)
    await db.flush()

    schedule = Schedule(
        activity_id=activity.id,
        days_of_week=[0, 1, 2, 3, 4, 5, 6],
        start_time=time(9, 0),
        end_time=time(18, 0),
        available_spots=10,
    )
    db.add(schedule)
    await db.commit()

    return SimpleNamespace(
        customer=customer,
        other=other,
        owner=owner,
        category=category,
        provider=provider,
        activity=activity,
        schedule=schedule,
    )


async def make_booking(
    db,
    catalog,
    *,
    participants: int = 2,
    total: Decimal = Decimal("2000.00"),
    status: BookingStatus = BookingStatus.PENDING,
    booking_date: date = EVENT_DATE,
    booking_time: time = EVENT_TIME,
    paid: bool = False,
    customer=None,
) -> Booking:
    """Insert a booking directly, bypassing pricing and availability."""
    customer = customer or catalog.customer
    booking = Booking(
        reference=new_booking_reference(NOW),
        customer_id=customer.id,
        activity_id=catalog.activity.id,
        booking_date=booking_date,
        booking_time=booking_time,
        participants=participants,
        status=status,
        price_per_participant=catalog.activity.price,
        subtotal=total,
        total_amount=total,
        commission_amount=(total * Decimal("0.10")).quantize(Decimal("0.01")),
        provider_payout=total - (total * Decimal("0.10")).quantize(Decimal("0.01")),
        paid_at=NOW if paid else None,
    )
    db.add(booking)
    await db.flush()
    return booking


async def make_payment(db, booking, *, status=PaymentStatus.COMPLETED, order_id="order_TEST1", payment_id="pay_TEST1"):
    payment = Payment(
        booking_id=booking.id,
        reference=f"PAY-TEST-{booking.id}",
        amount=booking.total_amount,
        currency=booking.currency or "INR",
        status=status,
        gateway_order_id=order_id,
        gateway_payment_id=payment_id if status != PaymentStatus.PENDING else None,
        paid_at=NOW if status == PaymentStatus.COMPLETED else None,
    )
    db.add(payment)
    await db.flush()
    return payment
