"""
tests/test_notifications.py
Booking notifications: in-app rows, the inbox endpoints and email delivery.
"""

import uuid

import pytest
import resend
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from services.notification.dispatcher import email_breaker
from shared.models.models import Booking, Host, Notification, NotificationType, User
from tests.conftest import auth_headers, booking_payload


@pytest.fixture
def sent_emails(monkeypatch):
    """Enable email with a recording stand-in for the Resend client."""
    sent = []
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(resend.Emails, "send", lambda params: sent.append(params) or {"id": "email_1"})
    yield sent
    email_breaker.close()


@pytest.fixture
def failing_email(monkeypatch):
    """Every send raises; returns the list of attempted payloads."""
    attempts = []

    def _raise(params):
        attempts.append(params)
        raise RuntimeError("provider unavailable")

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(settings, "EMAIL_RETRY_BACKOFF", 0)
    monkeypatch.setattr(resend.Emails, "send", _raise)
    yield attempts
    email_breaker.close()


async def _book(client: AsyncClient, guest: User, host: Host) -> dict:
    response = await client.post("/bookings", headers=auth_headers(guest), json=booking_payload(host))
    assert response.status_code == 201, response.text
    return response.json()["booking"]


async def _confirm(client: AsyncClient, host_user: User, booking_id: str) -> None:
    response = await client.put(
        f"/bookings/{booking_id}/status", headers=auth_headers(host_user), json={"status": "confirmed"}
    )
    assert response.status_code == 200, response.text


# ── Inbox ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_inbox_empty(client: AsyncClient, user: User):
    response = await client.get("/notifications", headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()
    assert data["notifications"] == []
    assert data["unreadCount"] == 0
    assert data["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_booking_creates_notifications_for_both_parties(
    client: AsyncClient, user: User, host_user: User, host: Host
):
    booking = await _book(client, user, host)

    response = await client.get("/notifications", headers=auth_headers(user))
    data = response.json()
    assert data["unreadCount"] == 1
    notice = data["notifications"][0]
    assert notice["type"] == "BOOKING_CONFIRMATION"
    assert notice["bookingId"] == booking["id"]
    assert notice["isRead"] is False
    assert notice["sentEmail"] is False

    response = await client.get("/notifications", headers=auth_headers(host_user))
    notices = response.json()["notifications"]
    assert [n["type"] for n in notices] == ["NEW_BOOKING"]
    assert "Maya Fernandes" in notices[0]["body"]


@pytest.mark.asyncio
async def test_mark_read(client: AsyncClient, user: User, other_user: User, host: Host):
    await _book(client, user, host)
    response = await client.get("/notifications", headers=auth_headers(user))
    notification_id = response.json()["notifications"][0]["id"]

    response = await client.put(f"/notifications/{notification_id}/read", headers=auth_headers(other_user))
    assert response.status_code == 404

    response = await client.put(f"/notifications/{notification_id}/read", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["isRead"] is True
    assert response.json()["readAt"] is not None

    response = await client.get("/notifications?unreadOnly=true", headers=auth_headers(user))
    data = response.json()
    assert data["notifications"] == []
    assert data["unreadCount"] == 0


@pytest.mark.asyncio
async def test_mark_read_unknown_is_404(client: AsyncClient, user: User):
    response = await client.put(f"/notifications/{uuid.uuid4()}/read", headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json()["message"] == "Notification not found"


@pytest.mark.asyncio
async def test_cancellation_notifies_both_parties(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await _book(client, user, host)
    await _confirm(client, host_user, booking["id"])
    response = await client.post(
        f"/bookings/{booking['id']}/cancel", headers=auth_headers(user), json={"reason": "Change of plans"}
    )
    assert response.status_code == 200

    result = await db.execute(
        select(Notification.user_id).where(Notification.type == NotificationType.BOOKING_CANCELLED)
    )
    assert set(result.scalars()) == {user.id, host_user.id}


# ── Email ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_booking_emails_sent(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession, sent_emails
):
    await _book(client, user, host)

    assert [e["to"] for e in sent_emails] == [[host_user.email], [user.email]]
    assert sent_emails[1]["subject"] == "Booking Confirmation - CulturalStay"
    assert "cooking" in sent_emails[1]["html"]

    flags = await db.execute(select(Notification.sent_email))
    assert set(flags.scalars()) == {True}


@pytest.mark.asyncio
async def test_cancellation_sends_one_email_to_both(
    client: AsyncClient, user: User, host_user: User, host: Host, sent_emails
):
    booking = await _book(client, user, host)
    await _confirm(client, host_user, booking["id"])
    sent_emails.clear()

    await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers(host_user))
    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == [user.email, host_user.email]
    assert "Cancelled by:</strong> host" in sent_emails[0]["html"]


@pytest.mark.asyncio
async def test_email_failure_rolls_back_booking(
    client: AsyncClient, user: User, host: Host, db: AsyncSession, failing_email
):
    response = await client.post("/bookings", headers=auth_headers(user), json=booking_payload(host))
    assert response.status_code == 500
    assert response.json()["message"] == "Server error"
    assert len(failing_email) == settings.EMAIL_RETRY_ATTEMPTS

    assert await db.scalar(select(func.count(Booking.id))) == 0
    assert await db.scalar(select(func.count(Notification.id))) == 0


@pytest.mark.asyncio
async def test_host_email_failure_sends_no_guest_confirmation(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession, monkeypatch
):
    delivered = []

    def _send(params):
        if params["to"] == [host_user.email]:
            raise RuntimeError("host mailbox rejected")
        delivered.append(params)
        return {"id": "email_1"}

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(settings, "EMAIL_RETRY_BACKOFF", 0)
    monkeypatch.setattr(resend.Emails, "send", _send)
    try:
        response = await client.post("/bookings", headers=auth_headers(user), json=booking_payload(host))
    finally:
        email_breaker.close()

    assert response.status_code == 500
    assert delivered == []
    assert await db.scalar(select(func.count(Booking.id))) == 0
