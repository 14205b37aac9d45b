"""Email sending via SMTP."""

import logging
from email.message import EmailMessage

import aiosmtplib
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.config import settings
from funbookr.models.booking import Booking
from funbookr.models.catalog import Activity
from funbookr.models.gift_card import GiftCard
from funbookr.models.user import User

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str) -> None:
    """Send a plain-text email via SMTP."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(message, hostname=settings.smtp_host, port=settings.smtp_port)


def booking_confirmation_body(user: User, booking: Booking, activity: Activity) -> str:
    return (
        f"Hi {user.first_name},\n\n"
        f"Your booking {booking.reference} is confirmed.\n\n"
        f"Activity: {activity.title}\n"
        f"Date: {booking.booking_date:%A %d %B %Y}\n"
        f"Time: {booking.booking_time:%H:%M}\n"
        f"Participants: {booking.participants}\n"
        f"Amount paid: {booking.currency} {booking.total_amount}\n\n"
        f"Manage your booking at {settings.frontend_url}/bookings/{booking.id}\n\n"
        f"{settings.app_name}"
    )


async def send_booking_confirmation(db: AsyncSession, booking_id: int) -> None:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        logger.warning("Confirmation email skipped: booking %s not found", booking_id)
        return
    user = await db.get(User, booking.customer_id)
    activity = await db.get(Activity, booking.activity_id)

    await send_email(
        user.email,
        f"Booking confirmed: {activity.title}",
        booking_confirmation_body(user, booking, activity),
    )
    logger.info("Booking confirmation for %s sent to %s", booking.reference, user.email)


def gift_card_body(card: GiftCard, sender: User) -> str:
    body = (
        f"Hi {card.recipient_name or 'there'},\n\n"
        f"{sender.full_name} has sent you a {settings.app_name} gift card worth "
        f"{card.currency} {card.original_amount}.\n\n"
        f"Gift card code: {card.code}\n"
        f"Valid until: {card.expires_at:%d %B %Y}\n\n"
    )
    if card.message:
        body += f"Message: {card.message}\n\n"
    return body + f"Redeem it at {settings.frontend_url}\n\n{settings.app_name}"


async def send_gift_card_email(db: AsyncSession, gift_card_id: int) -> None:
    card = await db.get(GiftCard, gift_card_id)
    if card is None or not card.recipient_email:
        return
    sender = await db.get(User, card.purchased_by)

    await send_email(card.recipient_email, f"You've received a {settings.app_name} gift card", gift_card_body(card, sender))
    logger.info("Gift card %s emailed to %s", card.code, card.recipient_email)
