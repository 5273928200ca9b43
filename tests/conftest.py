"""
tests/conftest.py
Shared fixtures: in-memory SQLite database, fake Redis, HTTP client,
and one approved account per role.
"""

import os

# Settings are read at import time, so the environment comes first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_EMAILS", "owner@example.com")

from decimal import Decimal

import fakeredis.aioredis
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.database import Base, get_db
from config.redis_client import get_redis
from main import app
from shared.models.models import (
    ApprovalStatus,
    BookingAssignment,
    BookingRequest,
    BookingStatus,
    ProviderProfile,
    ServiceCategory,
    User,
    UserRole,
)
from shared.utils.security import create_access_token, hash_password

TEST_PASSWORD = "password123"
# One bcrypt hash shared by every fixture account keeps the suite fast
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def auth_headers(user: User) -> dict:
    token, _ = create_access_token(str(user.id), user.role.value, user.email)
    return {"Authorization": f"Bearer {token}"}


# ── Infrastructure ────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(session_factory, redis):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Accounts ──────────────────────────────────────────────────

async def make_user(
    db: AsyncSession,
    email: str,
    role: UserRole,
    status: ApprovalStatus = ApprovalStatus.APPROVED,
    full_name: str = "Test User",
) -> User:
    user = User(
        email=email,
        password_hash=_PASSWORD_HASH,
        full_name=full_name,
        phone="+919876543210",
        role=role,
        status=status,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def customer(db: AsyncSession) -> User:
    return await make_user(db, "customer@example.com", UserRole.CUSTOMER, full_name="Asha Customer")


@pytest_asyncio.fixture
async def pending_user(db: AsyncSession) -> User:
    return await make_user(
        db, "waiting@example.com", UserRole.CUSTOMER, ApprovalStatus.PENDING, "Pending Person"
    )


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    return await make_user(db, "admin@example.com", UserRole.ADMIN, full_name="Site Admin")


@pytest_asyncio.fixture
async def provider_user(db: AsyncSession) -> User:
    return await make_user(db, "provider@example.com", UserRole.PROVIDER, full_name="Ravi Provider")


async def make_profile(
    db: AsyncSession,
    user: User,
    business_name: str = "Ravi Electricals",
    category: ServiceCategory = ServiceCategory.ELECTRICIAN,
    available: bool = True,
    rating: float = 4.5,
) -> ProviderProfile:
    profile = ProviderProfile(
        user_id=user.id,
        business_name=business_name,
        category=category,
        subcategory="Residential",
        description="Wiring, fittings and repairs",
        location="Pune",
        contact="+919812345678",
        experience="5-10",
        available=available,
        rating=rating,
    )
    db.add(profile)
    await db.commit()
    return profile


@pytest_asyncio.fixture
async def provider_profile(db: AsyncSession, provider_user: User) -> ProviderProfile:
    return await make_profile(db, provider_user)


# ── Bookings ──────────────────────────────────────────────────

async def make_booking(db: AsyncSession, customer: User, **overrides) -> BookingRequest:
    values = {
        "customer_id": customer.id,
        "service_category": ServiceCategory.ELECTRICIAN,
        "service_name": "Fan installation",
        "customer_name": customer.full_name,
        "customer_phone": "+919876543210",
        "service_address": "12 MG Road, Pune",
        "estimated_price": Decimal("750.00"),
        "status": BookingStatus.PENDING,
    }
    values.update(overrides)
    booking = BookingRequest(**values)
    db.add(booking)
    await db.commit()
    return booking


@pytest_asyncio.fixture
async def booking(db: AsyncSession, customer: User) -> BookingRequest:
    return await make_booking(db, customer)


@pytest_asyncio.fixture
async def assigned_booking(
    db: AsyncSession,
    customer: User,
    provider_profile: ProviderProfile,
    admin_user: User,
) -> BookingRequest:
    booking = await make_booking(db, customer, status=BookingStatus.ASSIGNED)
    db.add(BookingAssignment(
        booking_id=booking.id,
        provider_id=provider_profile.id,
        assigned_by_id=admin_user.id,
    ))
    await db.commit()
    return booking
