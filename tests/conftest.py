"""
tests/conftest.py
Shared fixtures: in-memory SQLite schema per test, fakeredis, an ASGI
client, and a small cast of users (guest, host, admin).
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["RESEND_API_KEY"] = ""
os.environ["APP_ENV"] = "test"

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from fakeredis import aioredis as fake_aioredis
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import config.redis_client as redis_module
from config.database import AsyncSessionLocal, Base, engine
from main import app
from shared.models.models import (
    AccommodationType,
    Booking,
    BookingStatus,
    ExperienceType,
    Host,
    HostExperience,
    HostStatus,
    IncomeRange,
    PaymentMethod,
    User,
    UserRole,
)
from shared.utils.security import create_access_token


# ── Helpers ───────────────────────────────────────────────────

def auth_headers(user: User) -> dict:
    token, _ = create_access_token(str(user.id), user.role.value, user.email)
    return {"Authorization": f"Bearer {token}"}


def booking_payload(host: Host, days_ahead: int = 30, nights: int = 3, experience: str = "cooking") -> dict:
    check_in = datetime.now(timezone.utc) + timedelta(days=days_ahead)
    return {
        "host": str(host.id),
        "experience": experience,
        "checkIn": check_in.isoformat(),
        "checkOut": (check_in + timedelta(days=nights)).isoformat(),
        "guests": {"adults": 2, "children": 1, "infants": 0},
        "pricing": {"basePrice": 150, "serviceFee": 15, "taxes": 0, "discount": 0, "total": 165},
        "payment": {"method": "credit-card", "transactionId": "txn_test_001"},
        "specialRequests": {"dietary": ["vegetarian"], "accessibility": [], "other": "Late arrival"},
    }


async def create_booking_row(
    db,
    guest: User,
    host: Host,
    status: BookingStatus = BookingStatus.COMPLETED,
    check_in: datetime | None = None,
    nights: int = 3,
) -> Booking:
    check_in = check_in or datetime.now(timezone.utc) - timedelta(days=10)
    booking = Booking(
        id=uuid.uuid4(),
        guest_id=guest.id,
        host_id=host.id,
        experience=ExperienceType.COOKING,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        adults=2,
        children=0,
        infants=0,
        base_price=Decimal("150.00"),
        service_fee=Decimal("15.00"),
        taxes=Decimal("0"),
        discount=Decimal("0"),
        total=Decimal("165.00"),
        payment_method=PaymentMethod.CREDIT_CARD,
        status=status,
        cancelled=False,
    )
    db.add(booking)
    await db.commit()
    return booking


def make_host(user: User, status: HostStatus = HostStatus.APPROVED, city: str = "Jaipur", **overrides) -> Host:
    fields = dict(
        id=uuid.uuid4(),
        user_id=user.id,
        family_size=4,
        street="12 Heritage Lane",
        city=city,
        state="Rajasthan",
        country="India",
        postal_code="302001",
        income_range=IncomeRange.MIDDLE,
        accommodation_type=AccommodationType.HOUSE,
        bedrooms=2,
        bathrooms=1,
        base_price=Decimal("50.00"),
        weekly_discount=10.0,
        monthly_discount=20.0,
        status=status,
        experiences=[
            HostExperience(
                type=ExperienceType.COOKING,
                title="Rajasthani Thali Workshop",
                description="Cook a full thali with the family.",
                duration="3 hours",
                price=Decimal("40.00"),
                max_guests=4,
                includes=["Dinner", "Recipe booklet"],
            )
        ],
    )
    fields.update(overrides)
    return Host(**fields)


# ── Infrastructure ────────────────────────────────────────────

@pytest_asyncio.fixture(autouse=True)
async def database():
    """Fresh schema per test. Disposing the StaticPool drops the in-memory DB."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture(autouse=True)
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    redis_module.redis_client = client
    yield client
    await client.flushall()
    await client.aclose()
    redis_module.redis_client = None


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


# ── Users ─────────────────────────────────────────────────────

async def _make_user(db, email: str, first: str, last: str, role: UserRole) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        first_name=first,
        last_name=last,
        languages=["en"],
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db) -> User:
    return await _make_user(db, "maya.guest@culturalstay.io", "Maya", "Fernandes", UserRole.GUEST)


@pytest_asyncio.fixture
async def other_user(db) -> User:
    return await _make_user(db, "leo.guest@culturalstay.io", "Leo", "Park", UserRole.GUEST)


@pytest_asyncio.fixture
async def host_user(db) -> User:
    return await _make_user(db, "anita.host@culturalstay.io", "Anita", "Sharma", UserRole.HOST)


@pytest_asyncio.fixture
async def admin_user(db) -> User:
    return await _make_user(db, "ops.admin@culturalstay.io", "Ops", "Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def host(db, host_user) -> Host:
    """Approved host profile owned by host_user, offering a cooking experience."""
    profile = make_host(host_user)
    db.add(profile)
    await db.commit()
    return profile
