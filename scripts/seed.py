"""Seed the database with FunBookr demo data.

Run with: python -m scripts.seed
Creates categories, two providers with activities and weekly schedules,
a couple of coupons, and test users.
"""

import asyncio
from datetime import UTC, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select

from funbookr.core.auth import create_access_token
from funbookr.core.database import async_session_factory, engine
from funbookr.models import (
    Activity,
    Base,
    Category,
    Coupon,
    DiscountType,
    Provider,
    Schedule,
    User,
)

CATEGORIES = [
    {"name": "Adventure", "slug": "adventure"},
    {"name": "Workshops", "slug": "workshops"},
    {"name": "Wellness", "slug": "wellness"},
]

# Weekdays use 0 = Monday ... 6 = Sunday
PROVIDERS = [
    {
        "business_name": "Sahyadri Trails",
        "owner": {"email": "trails@funbookr.in", "first_name": "Meera", "last_name": "Kulkarni"},
        "activities": [
            {
                "title": "Sunrise Trek to Rajmachi",
                "category": "adventure",
                "price": Decimal("1000.00"),
                "min_participants": 1,
                "max_participants": 10,
                "duration_minutes": 360,
                "schedules": [{"days": [5, 6], "start": time(5, 30), "end": time(6, 30), "spots": 25}],
            },
            {
                "title": "Kayaking on Pawna Lake",
                "category": "adventure",
                "price": Decimal("1500.00"),
                "discounted_price": Decimal("1200.00"),
                "min_participants": 2,
                "max_participants": 6,
                "duration_minutes": 120,
                "schedules": [
                    {"days": [0, 1, 2, 3, 4], "start": time(7, 0), "end": time(17, 0), "spots": 12},
                    {"days": [5, 6], "start": time(6, 0), "end": time(18, 0), "spots": 20},
                ],
            },
        ],
    },
    {
        "business_name": "Clay & Kiln Studio",
        "owner": {"email": "studio@funbookr.in", "first_name": "Arjun", "last_name": "Rao"},
        "activities": [
            {
                "title": "Pottery for Beginners",
                "category": "workshops",
                "price": Decimal("850.00"),
                "min_participants": 1,
                "max_participants": 4,
                "duration_minutes": 150,
                "schedules": [{"days": [2, 4, 5], "start": time(11, 0), "end": time(16, 0), "spots": 8}],
            },
        ],
    },
]


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(Category).where(Category.slug == "adventure"))
        if result.scalar_one_or_none():
            print("Database already seeded, skipping.")
            return

        categories = {}
        for data in CATEGORIES:
            category = Category(**data)
            db.add(category)
            await db.flush()
            categories[category.slug] = category

        total_activities = 0
        for provider_data in PROVIDERS:
            owner = User(**provider_data["owner"])
            db.add(owner)
            await db.flush()

            provider = Provider(user_id=owner.id, business_name=provider_data["business_name"])
            db.add(provider)
            await db.flush()

            for activity_data in provider_data["activities"]:
                activity = Activity(
                    provider_id=provider.id,
                    category_id=categories[activity_data["category"]].id,
                    title=activity_data["title"],
                    price=activity_data["price"],
                    discounted_price=activity_data.get("discounted_price"),
                    min_participants=activity_data["min_participants"],
                    max_participants=activity_data["max_participants"],
                    duration_minutes=activity_data["duration_minutes"],
                )
                db.add(activity)
                await db.flush()
                total_activities += 1

                for schedule in activity_data["schedules"]:
                    db.add(
                        Schedule(
                            activity_id=activity.id,
                            days_of_week=schedule["days"],
                            start_time=schedule["start"],
                            end_time=schedule["end"],
                            available_spots=schedule["spots"],
                        )
                    )

        now = datetime.now(UTC)
        db.add_all([
            Coupon(
                code="SAVE10",
                description="10% off, up to Rs 150",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("10"),
                max_discount_amount=Decimal("150"),
                valid_from=now,
                valid_until=now + timedelta(days=90),
            ),
            Coupon(
                code="WELCOME200",
                description="Rs 200 off your first adventure",
                discount_type=DiscountType.FIXED,
                discount_value=Decimal("200"),
                min_order_amount=Decimal("1000"),
                valid_from=now,
                valid_until=now + timedelta(days=365),
                usage_limit=1,
                applicable_categories=[categories["adventure"].id],
            ),
        ])

        customer = User(email="customer@example.com", first_name="Test", last_name="Customer")
        db.add(customer)
        await db.commit()

        print(f"Seeded: {len(CATEGORIES)} categories")
        print(f"  {len(PROVIDERS)} providers")
        print(f"  {total_activities} activities")
        print("  2 coupons: SAVE10, WELCOME200")
        print(f"  test customer token: {create_access_token(str(customer.id))}")


if __name__ == "__main__":
    asyncio.run(seed())
