"""
services/notification/dispatcher.py
Booking notifications: in-app rows + transactional email via Resend.
Dispatch is awaited inline by the booking handlers; a delivery failure
raises NotificationDeliveryError and the request transaction rolls back.
"""

import asyncio
import logging
from typing import Optional

import resend
from pybreaker import CircuitBreaker, CircuitBreakerError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import Retrying, stop_after_attempt, wait_exponential

from config.settings import settings
from shared.models.models import Booking, Notification, NotificationType, User

logger = logging.getLogger(__name__)

email_breaker = CircuitBreaker(
    fail_max=settings.EMAIL_BREAKER_FAIL_MAX,
    reset_timeout=settings.EMAIL_BREAKER_RESET_TIMEOUT,
    name="resend-email",
)


class NotificationDeliveryError(Exception):
    """An email could not be handed to the provider."""


# ── Email ─────────────────────────────────────────────────────

def _deliver(params: dict) -> None:
    resend.api_key = settings.RESEND_API_KEY
    for attempt in Retrying(
        stop=stop_after_attempt(settings.EMAIL_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.EMAIL_RETRY_BACKOFF, max=10),
        reraise=True,
    ):
        with attempt:
            resend.Emails.send(params)


async def send_email(to: list[str], subject: str, html_body: str) -> bool:
    """
    Send one transactional email. Returns False when email is disabled
    (no API key); raises NotificationDeliveryError on provider failure.
    """
    if not settings.email_enabled:
        logger.info(f"Email disabled, skipping '{subject}' to {to}")
        return False

    params = {
        "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
        "to": to,
        "subject": subject,
        "html": html_body,
    }
    try:
        await asyncio.to_thread(email_breaker.call, _deliver, params)
    except CircuitBreakerError as e:
        logger.error(f"Email circuit open, '{subject}' not sent: {e}")
        raise NotificationDeliveryError("Email service unavailable") from e
    except Exception as e:
        logger.error(f"Email send failed for '{subject}': {e}")
        raise NotificationDeliveryError(str(e)) from e

    logger.info(f"Email '{subject}' sent to {to}")
    return True


# ── Templates ─────────────────────────────────────────────────

def _layout(heading: str, intro: str, details: list[tuple[str, str]], outro: str) -> str:
    rows = "".join(f"<p><strong>{label}:</strong> {value}</p>" for label, value in details)
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2>{heading}</h2>
            {intro}
            <div style="background-color: #f9f9f9; padding: 15px; border-radius: 6px; margin: 20px 0;">
                {rows}
            </div>
            <p>{outro}</p>
        </div>
    """


def _day(value) -> str:
    return value.strftime("%a %b %d %Y")


def _booking_details(booking: Booking) -> list[tuple[str, str]]:
    return [
        ("Experience", booking.experience.value),
        ("Check-in", _day(booking.check_in)),
        ("Check-out", _day(booking.check_out)),
        ("Guests", f"{booking.adults} adults"),
        ("Total", f"${float(booking.total):.2f}"),
    ]


def _notify(
    db: AsyncSession,
    user: User,
    booking: Booking,
    notification_type: NotificationType,
    title: str,
    body: str,
) -> Notification:
    notification = Notification(
        user_id=user.id,
        booking_id=booking.id,
        type=notification_type,
        title=title,
        body=body,
    )
    db.add(notification)
    return notification


# ── Dispatchers ───────────────────────────────────────────────

async def notify_booking_created(
    db: AsyncSession, booking: Booking, guest: User, host_user: User
) -> None:
    """
    New-booking notice to the host, confirmation to the guest. Both rows are
    flushed before any email goes out, and the guest confirmation is sent
    last: a failed host send aborts before the guest hears anything.
    """
    guest_notice = _notify(
        db, guest, booking, NotificationType.BOOKING_CONFIRMATION,
        "Booking Confirmed!",
        f"Your {booking.experience.value} booking with {host_user.full_name} "
        f"on {_day(booking.check_in)} has been received.",
    )
    host_notice = _notify(
        db, host_user, booking, NotificationType.NEW_BOOKING,
        "New Booking Received!",
        f"{guest.full_name} booked {booking.experience.value} "
        f"from {_day(booking.check_in)} to {_day(booking.check_out)}.",
    )
    await db.flush()

    details = _booking_details(booking)
    host_notice.sent_email = await send_email(
        [host_user.email],
        "New Booking Received - CulturalStay",
        _layout(
            "New Booking Received!",
            f"<p>Hi {host_user.full_name},</p><p>You have a new booking from {guest.full_name}!</p>",
            details,
            "Please prepare for your guests' arrival!",
        ),
    )
    guest_notice.sent_email = await send_email(
        [guest.email],
        "Booking Confirmation - CulturalStay",
        _layout(
            "Booking Confirmed!",
            f"<p>Hi {guest.full_name},</p><p>Your booking with {host_user.full_name} has been confirmed!</p>",
            details,
            "Have a wonderful cultural experience!",
        ),
    )


async def notify_booking_cancelled(
    db: AsyncSession, booking: Booking, guest: User, host_user: User
) -> None:
    """One cancellation email to both parties, one in-app row each."""
    reason: Optional[str] = booking.cancellation_reason or "No reason provided"
    cancelled_by = booking.cancelled_by.value if booking.cancelled_by else "unknown"
    body = (
        f"The {booking.experience.value} booking between {guest.full_name} and "
        f"{host_user.full_name} on {_day(booking.check_in)} was cancelled by {cancelled_by}."
    )
    notices = [
        _notify(db, user, booking, NotificationType.BOOKING_CANCELLED, "Booking Cancelled", body)
        for user in (guest, host_user)
    ]
    await db.flush()

    sent = await send_email(
        [guest.email, host_user.email],
        "Booking Cancelled - CulturalStay",
        _layout(
            "Booking Cancelled",
            f"<p>The booking between {guest.full_name} and {host_user.full_name} has been cancelled.</p>",
            [
                ("Experience", booking.experience.value),
                ("Check-in", _day(booking.check_in)),
                ("Check-out", _day(booking.check_out)),
                ("Cancelled by", cancelled_by),
                ("Reason", reason),
            ],
            "If you have any questions, please contact our support team.",
        ),
    )
    for notice in notices:
        notice.sent_email = sent
