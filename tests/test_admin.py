"""
tests/test_admin.py
Admin host moderation: listing status, superhost flag, verification.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.redis_client import RedisCache
from shared.models.models import Host, HostStatus, User
from tests.conftest import auth_headers, booking_payload, make_host


@pytest.mark.asyncio
async def test_admin_approves_host(client: AsyncClient, admin_user: User, other_user: User, db: AsyncSession):
    pending = make_host(other_user, status=HostStatus.PENDING)
    db.add(pending)
    await db.commit()

    response = await client.get("/hosts")
    assert response.json()["hosts"] == []

    response = await client.put(
        f"/admin/hosts/{pending.id}/status",
        headers=auth_headers(admin_user),
        json={"status": "approved", "superhost": True},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "approved"
    assert body["superhost"] is True

    response = await client.get("/hosts")
    assert [h["id"] for h in response.json()["hosts"]] == [str(pending.id)]


@pytest.mark.asyncio
async def test_suspended_host_rejects_bookings(
    client: AsyncClient, admin_user: User, user: User, host: Host
):
    response = await client.put(
        f"/admin/hosts/{host.id}/status", headers=auth_headers(admin_user), json={"status": "suspended"}
    )
    assert response.status_code == 200

    response = await client.post("/bookings", headers=auth_headers(user), json=booking_payload(host))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_non_admin_forbidden(client: AsyncClient, host_user: User, host: Host):
    response = await client.put(
        f"/admin/hosts/{host.id}/status", headers=auth_headers(host_user), json={"status": "approved"}
    )
    assert response.status_code == 403
    assert response.json()["message"] == "User role host is not authorized to access this route"

    response = await client.put(
        f"/admin/hosts/{host.id}/verification", headers=auth_headers(host_user), json={"identity": True}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_status_rejected(client: AsyncClient, admin_user: User, host: Host):
    response = await client.put(
        f"/admin/hosts/{host.id}/status", headers=auth_headers(admin_user), json={"status": "archived"}
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "status"


@pytest.mark.asyncio
async def test_verification_flags(
    client: AsyncClient, admin_user: User, host: Host, db: AsyncSession, redis
):
    await client.get(f"/hosts/{host.id}")
    assert await redis.get(RedisCache.host_key(host.id)) is not None

    response = await client.put(
        f"/admin/hosts/{host.id}/verification",
        headers=auth_headers(admin_user),
        json={"identity": True, "background": True},
    )
    body = response.json()
    assert body["verification"]["identity"] is True
    assert body["verification"]["income"] is False
    assert body["verification"]["verificationDate"] is not None
    assert body["isVerified"] is False
    assert await redis.get(RedisCache.host_key(host.id)) is None

    response = await client.put(
        f"/admin/hosts/{host.id}/verification", headers=auth_headers(admin_user), json={"income": True}
    )
    body = response.json()
    assert body["isVerified"] is True
    assert body["verification"]["identity"] is True
    assert body["incomeVerification"]["verified"] is True

    income_date = await db.scalar(select(Host.income_verification_date).where(Host.id == host.id))
    assert income_date is not None

    response = await client.get("/hosts?verified=true")
    assert [h["id"] for h in response.json()["hosts"]] == [str(host.id)]


@pytest.mark.asyncio
async def test_unknown_host_is_404(client: AsyncClient, admin_user: User):
    response = await client.put(
        "/admin/hosts/00000000-0000-0000-0000-000000000000/status",
        headers=auth_headers(admin_user),
        json={"status": "approved"},
    )
    assert response.status_code == 404
