"""Celery worker: background side effects of the booking lifecycle.

Every task opens its own database session and commits independently of the
request that dispatched it. Failures are logged and never retried.
"""

import asyncio
import logging

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from funbookr.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "funbookr",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    task_ignore_result=True,
)


@celery_setup_logging.connect
def _configure_logging(**kwargs) -> None:
    from funbookr.core.logging import setup_logging

    setup_logging()


def _run(job, *args) -> None:
    """Run an async job with a fresh session, commit, and dispose pooled connections.

    Each task gets a new event loop, so connections from a previous loop
    cannot be reused.
    """
    from funbookr.core.database import async_session_factory, engine

    async def _main():
        try:
            async with async_session_factory() as db:
                await job(db, *args)
                await db.commit()
        finally:
            await engine.dispose()

    asyncio.run(_main())


@celery_app.task(name="funbookr.award_booking_points")
def award_booking_points_task(booking_id: int) -> None:
    from funbookr.services.loyalty import award_booking_points

    try:
        _run(award_booking_points, booking_id)
    except Exception:
        logger.exception("Loyalty award failed for booking %s", booking_id)


@celery_app.task(name="funbookr.award_review_points")
def award_review_points_task(review_id: int) -> None:
    from funbookr.services.loyalty import award_review_points

    try:
        _run(award_review_points, review_id)
    except Exception:
        logger.exception("Review points failed for review %s", review_id)


@celery_app.task(name="funbookr.refresh_ratings")
def refresh_ratings_task(activity_id: int) -> None:
    from funbookr.services.ratings import refresh_activity_and_provider

    try:
        _run(refresh_activity_and_provider, activity_id)
    except Exception:
        logger.exception("Rating refresh failed for activity %s", activity_id)


@celery_app.task(name="funbookr.increment_view_count")
def increment_view_count_task(activity_id: int) -> None:
    from funbookr.services.catalog import increment_view_count

    try:
        _run(increment_view_count, activity_id)
    except Exception:
        logger.exception("View count increment failed for activity %s", activity_id)


@celery_app.task(name="funbookr.send_booking_confirmation")
def send_booking_confirmation_task(booking_id: int) -> None:
    from funbookr.services.email import send_booking_confirmation

    try:
        _run(send_booking_confirmation, booking_id)
    except Exception:
        logger.exception("Confirmation email failed for booking %s", booking_id)


@celery_app.task(name="funbookr.send_gift_card_email")
def send_gift_card_email_task(gift_card_id: int) -> None:
    from funbookr.services.email import send_gift_card_email

    try:
        _run(send_gift_card_email, gift_card_id)
    except Exception:
        logger.exception("Gift card email failed for card %s", gift_card_id)


@celery_app.task(name="funbookr.refund_payment")
def refund_payment_task(payment_id: int, reason: str) -> None:
    from funbookr.services.payments import refund_captured_payment
    from funbookr.services.razorpay import RazorpayClient

    async def _refund(db, payment_id, reason):
        gateway = RazorpayClient()
        try:
            await refund_captured_payment(db, gateway, payment_id, reason)
        finally:
            await gateway.aclose()

    try:
        _run(_refund, payment_id, reason)
    except Exception:
        logger.exception("Refund of captured payment %s failed, needs manual follow-up", payment_id)
