"""Background dispatch, Celery task wiring and outgoing email."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

from conftest import NOW, make_booking

from funbookr import worker
from funbookr.models import BookingStatus
from funbookr.services.background import dispatch, dispatch_after_commit, pending_tasks
from funbookr.services.email import send_booking_confirmation, send_gift_card_email
from funbookr.services.gift_cards import create_gift_card
from funbookr.services.loyalty import award_booking_points


def test_dispatch_never_raises(sent_tasks):
    sent_tasks.side_effect = ConnectionError("broker down")
    dispatch("funbookr.increment_view_count", 1)
    sent_tasks.assert_called_once()


async def test_queued_tasks_survive_until_commit(db, sent_tasks):
    dispatch_after_commit(db, "funbookr.refresh_ratings", 7)
    dispatch_after_commit(db, "funbookr.award_booking_points", 3)
    assert len(pending_tasks(db)) == 2

    await db.commit()
    assert [c.args[0] for c in sent_tasks.call_args_list] == ["funbookr.refresh_ratings", "funbookr.award_booking_points"]
    assert pending_tasks(db) == []

    # Listeners stay registered but the queue is empty
    await db.commit()
    assert sent_tasks.call_count == 2


def test_task_runs_service_in_fresh_session():
    with patch.object(worker, "_run") as run:
        worker.award_booking_points_task(42)
    run.assert_called_once_with(award_booking_points, 42)


def test_task_failure_is_logged_not_raised(caplog):
    with patch.object(worker, "_run", side_effect=RuntimeError("db gone")):
        worker.refresh_ratings_task(9)
    assert "Rating refresh failed for activity 9" in caplog.text


def test_refund_task_failure_is_logged(caplog):
    with patch.object(worker, "_run", side_effect=RuntimeError("gateway down")) as run:
        worker.refund_payment_task(5, "booking cancelled")
    assert run.call_args.args[1:] == (5, "booking cancelled")
    assert "Refund of captured payment 5 failed" in caplog.text


async def test_booking_confirmation_email(db, catalog):
    booking = await make_booking(db, catalog, status=BookingStatus.CONFIRMED, paid=True)
    with patch("funbookr.services.email.aiosmtplib.send", new_callable=AsyncMock) as send:
        await send_booking_confirmation(db, booking.id)

    message = send.await_args.args[0]
    assert message["To"] == "asha@example.com"
    assert message["Subject"] == "Booking confirmed: Sunrise Trek"
    assert booking.reference in message.get_content()


async def test_confirmation_for_missing_booking_is_skipped(db):
    with patch("funbookr.services.email.aiosmtplib.send", new_callable=AsyncMock) as send:
        await send_booking_confirmation(db, 999)
    send.assert_not_awaited()


async def test_gift_card_email(db, catalog):
    card = (
        await create_gift_card(
            db,
            Decimal("750"),
            catalog.other.id,
            recipient_email="asha@example.com",
            recipient_name="Asha",
            message="Happy birthday!",
            now=NOW,
        )
    ).value
    with patch("funbookr.services.email.aiosmtplib.send", new_callable=AsyncMock) as send:
        await send_gift_card_email(db, card.id)

    body = send.await_args.args[0].get_content()
    assert card.code in body
    assert "Ravi Menon" in body
    assert "Happy birthday!" in body
