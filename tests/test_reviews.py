"""
tests/test_reviews.py
Review creation in both directions, host rating aggregation, edits,
responses, helpful marks and flags.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.redis_client import RedisCache
from shared.models.models import Booking, BookingStatus, Host, Review, User
from shared.utils.dates import utcnow
from tests.conftest import auth_headers, create_booking_row


def _review_payload(booking: Booking, review_type: str = "guest-to-host", overall: int = 5, **ratings) -> dict:
    return {
        "booking": str(booking.id),
        "type": review_type,
        "ratings": {"overall": overall, **ratings},
        "comment": "Wonderful family, unforgettable food and stories.",
        "highlights": ["excellent-cooking", "warm-hospitality"],
    }


async def _post_review(client: AsyncClient, user: User, payload: dict) -> dict:
    response = await client.post("/reviews", headers=auth_headers(user), json=payload)
    assert response.status_code == 201, response.text
    return response.json()["review"]


async def _host_ratings(db: AsyncSession, host: Host) -> tuple:
    result = await db.execute(
        select(Host.rating_overall, Host.rating_cleanliness, Host.total_reviews).where(Host.id == host.id)
    )
    return tuple(result.one())


# ── Create ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_guest_reviews_host(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)

    response = await client.post(
        "/reviews", headers=auth_headers(user), json=_review_payload(booking, cleanliness=4, cooking=5)
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Review created successfully"
    review = body["review"]
    assert review["type"] == "guest-to-host"
    assert review["reviewer"]["id"] == str(user.id)
    assert review["reviewee"]["id"] == str(host_user.id)
    assert review["ratings"]["overall"] == 5
    assert review["ratings"]["cleanliness"] == 4
    assert review["highlights"] == ["excellent-cooking", "warm-hospitality"]
    assert review["helpfulCount"] == 0
    assert review["isRecent"] is True
    assert review["booking"]["id"] == str(booking.id)

    assert await _host_ratings(db, host) == (5.0, 4.0, 1)
    guest_review_id = await db.scalar(select(Booking.guest_review_id).where(Booking.id == booking.id))
    assert str(guest_review_id) == review["id"]


@pytest.mark.asyncio
async def test_host_ratings_average_over_reviews(
    client: AsyncClient, user: User, other_user: User, host: Host, db: AsyncSession
):
    first = await create_booking_row(db, user, host)
    second = await create_booking_row(db, other_user, host, check_in=utcnow() - timedelta(days=30))

    await _post_review(client, user, _review_payload(first, overall=5, cleanliness=5))
    await _post_review(client, other_user, _review_payload(second, overall=4))

    # Missing cleanliness on the second review counts as zero
    assert await _host_ratings(db, host) == (4.5, 2.5, 2)


@pytest.mark.asyncio
async def test_review_invalidates_host_cache(
    client: AsyncClient, user: User, host: Host, db: AsyncSession, redis
):
    await client.get(f"/hosts/{host.id}")
    assert await redis.get(RedisCache.host_key(host.id)) is not None

    booking = await create_booking_row(db, user, host)
    await _post_review(client, user, _review_payload(booking))
    assert await redis.get(RedisCache.host_key(host.id)) is None


@pytest.mark.asyncio
async def test_host_reviews_guest(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(
        client, host_user, _review_payload(booking, review_type="host-to-guest", overall=4, respect=5)
    )
    assert review["reviewee"]["id"] == str(user.id)
    assert review["ratings"]["respect"] == 5

    # Host-to-guest reviews never touch host ratings
    assert await _host_ratings(db, host) == (0.0, 0.0, 0)
    host_review_id = await db.scalar(select(Booking.host_review_id).where(Booking.id == booking.id))
    assert str(host_review_id) == review["id"]


@pytest.mark.asyncio
async def test_cannot_review_unfinished_booking(client: AsyncClient, user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host, status=BookingStatus.CONFIRMED)
    response = await client.post("/reviews", headers=auth_headers(user), json=_review_payload(booking))
    assert response.status_code == 400
    assert response.json()["message"] == "Can only review completed bookings"


@pytest.mark.asyncio
async def test_review_direction_must_match_caller(
    client: AsyncClient, user: User, other_user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)

    response = await client.post("/reviews", headers=auth_headers(host_user), json=_review_payload(booking))
    assert response.status_code == 403
    assert response.json()["message"] == "Not authorized to review this booking"

    response = await client.post(
        "/reviews", headers=auth_headers(user), json=_review_payload(booking, review_type="host-to-guest")
    )
    assert response.status_code == 403

    response = await client.post("/reviews", headers=auth_headers(other_user), json=_review_payload(booking))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_duplicate_review_rejected(client: AsyncClient, user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host)
    await _post_review(client, user, _review_payload(booking))

    response = await client.post("/reviews", headers=auth_headers(user), json=_review_payload(booking))
    assert response.status_code == 400
    assert response.json()["message"] == "Review already exists for this booking"


@pytest.mark.asyncio
async def test_review_validation(client: AsyncClient, user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host)

    payload = _review_payload(booking)
    payload["comment"] = "Too short"
    response = await client.post("/reviews", headers=auth_headers(user), json=payload)
    assert response.status_code == 400

    response = await client.post("/reviews", headers=auth_headers(user), json=_review_payload(booking, overall=6))
    assert response.status_code == 400

    payload = _review_payload(booking)
    payload["comment"] = " " * 12
    response = await client.post("/reviews", headers=auth_headers(user), json=payload)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_review_missing_booking_is_404(client: AsyncClient, user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host)
    payload = _review_payload(booking)
    payload["booking"] = "00000000-0000-0000-0000-000000000000"
    response = await client.post("/reviews", headers=auth_headers(user), json=payload)
    assert response.status_code == 404


# ── Edit ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_reviewer_edits_review(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(client, user, _review_payload(booking, overall=5))

    response = await client.put(
        f"/reviews/{review['id']}", headers=auth_headers(host_user), json={"ratings": {"overall": 1}}
    )
    assert response.status_code == 403

    response = await client.put(
        f"/reviews/{review['id']}",
        headers=auth_headers(user),
        json={"ratings": {"overall": 3}, "comment": "Good, but the room was noisy at night."},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Review updated successfully"
    assert body["review"]["ratings"]["overall"] == 3
    assert body["review"]["comment"] == "Good, but the room was noisy at night."
    assert body["review"]["highlights"] == ["excellent-cooking", "warm-hospitality"]

    assert (await _host_ratings(db, host))[0] == 3.0


@pytest.mark.asyncio
async def test_edit_window_closes_after_thirty_days(
    client: AsyncClient, user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(client, user, _review_payload(booking))

    await db.execute(
        update(Review)
        .where(Review.booking_id == booking.id)
        .values(created_at=utcnow() - timedelta(days=31))
    )
    await db.commit()

    response = await client.put(
        f"/reviews/{review['id']}", headers=auth_headers(user), json={"ratings": {"overall": 2}}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Review can no longer be edited"


# ── Response ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_reviewee_responds_once(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(client, user, _review_payload(booking))
    url = f"/reviews/{review['id']}/response"

    response = await client.post(url, headers=auth_headers(user), json={"comment": "Replying to myself here."})
    assert response.status_code == 403

    response = await client.post(url, headers=auth_headers(host_user), json={"comment": "Thank you, come back soon!"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Response added successfully"
    assert body["response"]["comment"] == "Thank you, come back soon!"
    assert body["response"]["author"] == str(host_user.id)

    response = await client.post(url, headers=auth_headers(host_user), json={"comment": "A second thank you note."})
    assert response.status_code == 400
    assert response.json()["message"] == "Response already exists"


# ── Helpful & flag ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_helpful_toggle(
    client: AsyncClient, user: User, other_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(client, user, _review_payload(booking))
    url = f"/reviews/{review['id']}/helpful"

    response = await client.post(url, headers=auth_headers(other_user))
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Review marked as helpful"
    assert body["helpful"] == {"count": 1, "users": [str(other_user.id)]}

    response = await client.post(url, headers=auth_headers(other_user))
    body = response.json()
    assert body["message"] == "Helpful mark removed"
    assert body["helpful"] == {"count": 0, "users": []}


@pytest.mark.asyncio
async def test_flag_review(client: AsyncClient, user: User, other_user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host)
    review = await _post_review(client, user, _review_payload(booking))

    response = await client.put(
        f"/reviews/{review['id']}/flag", headers=auth_headers(other_user), json={"reason": "spam"}
    )
    assert response.status_code == 200

    result = await db.execute(select(Review.flagged, Review.flag_reason))
    flagged, reason = result.one()
    assert flagged is True
    assert reason.value == "spam"


# ── Listings ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_host_reviews_with_stats(
    client: AsyncClient, user: User, other_user: User, host: Host, db: AsyncSession
):
    first = await create_booking_row(db, user, host)
    second = await create_booking_row(db, other_user, host, check_in=utcnow() - timedelta(days=30))
    await _post_review(client, user, _review_payload(first, overall=5, cleanliness=5))
    await _post_review(client, other_user, _review_payload(second, overall=4))

    response = await client.get(f"/reviews/host/{host.id}")
    assert response.status_code == 200
    body = response.json()
    assert len(body["reviews"]) == 2
    assert body["reviews"][0]["reviewer"]["id"] == str(other_user.id)
    assert body["stats"]["averageRating"] == 4.5
    assert body["stats"]["totalReviews"] == 2
    assert sorted(b["rating"] for b in body["stats"]["ratingBreakdown"]) == [4, 5]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}


@pytest.mark.asyncio
async def test_host_reviews_empty_stats(client: AsyncClient, host: Host):
    response = await client.get(f"/reviews/host/{host.id}")
    assert response.status_code == 200
    assert response.json()["stats"] == {"averageRating": 0, "totalReviews": 0, "ratingBreakdown": []}


@pytest.mark.asyncio
async def test_user_reviews(client: AsyncClient, user: User, host: Host, db: AsyncSession):
    booking = await create_booking_row(db, user, host)
    await _post_review(client, user, _review_payload(booking))

    response = await client.get(f"/reviews/user/{user.id}")
    assert response.status_code == 200
    body = response.json()
    assert len(body["reviews"]) == 1
    assert body["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_comments_are_trimmed(
    client: AsyncClient, user: User, host_user: User, host: Host, db: AsyncSession
):
    booking = await create_booking_row(db, user, host)
    payload = _review_payload(booking)
    payload["comment"] = "   Lovely stay with the family.   "
    review = await _post_review(client, user, payload)
    assert review["comment"] == "Lovely stay with the family."

    url = f"/reviews/{review['id']}/response"
    response = await client.post(url, headers=auth_headers(host_user), json={"comment": " " * 15})
    assert response.status_code == 400

    response = await client.put(
        f"/reviews/{review['id']}", headers=auth_headers(user), json={"comment": "\t" * 20}
    )
    assert response.status_code == 400
