"""
services/provider/router.py
Provider profiles: public directory, self-service profile, availability,
assigned bookings, and earnings.
"""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.exceptions import ConflictError, NotFoundError
from shared.middleware.auth import SessionContext, require_provider
from shared.models.models import (
    SUBCATEGORIES,
    ApprovalStatus,
    BookingAssignment,
    BookingRequest,
    BookingStatus,
    ProviderProfile,
    ServiceCategory,
    User,
)
from shared.schemas.schemas import (
    AvailabilityUpdate,
    CategoryResponse,
    ProviderProfileCreate,
    ProviderProfileResponse,
    ProviderProfileUpdate,
    ProviderStatsResponse,
)
from shared.utils.bookings import to_booking_responses
from shared.utils.pagination import page_payload, paginate
from shared.utils.versioning import check_expected_version, flush_or_conflict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers", tags=["Providers"])


# ── Helpers ───────────────────────────────────────────────────

def _cache_key(profile_id) -> str:
    return f"provider:{profile_id}"


async def _get_profile_or_404(profile_id: UUID, db: AsyncSession) -> ProviderProfile:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.id == profile_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFoundError("Provider not found")
    return profile


def _own_profile(session: SessionContext) -> ProviderProfile:
    if not session.provider_profile:
        raise NotFoundError("Provider profile not found. Please complete registration.")
    return session.provider_profile


def create_profile(
    db: AsyncSession,
    user_id: UUID,
    fields: dict,
    available: bool,
) -> ProviderProfile:
    """Add a new profile for `user_id`. Flushed by the caller's transaction."""
    profile = ProviderProfile(user_id=user_id, available=available, **fields)
    db.add(profile)
    return profile


async def invalidate_profile_cache(redis, profile_id) -> None:
    await RedisCache(redis).delete(_cache_key(profile_id))


# ── Public Endpoints ──────────────────────────────────────────

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories():
    """The fixed list of trades, each with its specialisations."""
    return [
        CategoryResponse(name=category, subcategories=SUBCATEGORIES[category])
        for category in ServiceCategory
    ]


# ── Provider's Own Profile Endpoints ──────────────────────────

@router.post(
    "/me/profile",
    response_model=ProviderProfileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_my_profile(
    data: ProviderProfileCreate,
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """
    Self-service profile creation for an approved provider without one.
    New profiles start with availability `PROVIDER_SIGNUP_AVAILABLE`.
    """
    if session.provider_profile:
        raise ConflictError("Provider profile already exists")

    profile = create_profile(
        db,
        session.user.id,
        data.model_dump(),
        available=settings.PROVIDER_SIGNUP_AVAILABLE,
    )
    await db.commit()
    logger.info(f"Provider profile {profile.id} created for user {session.user.id}")
    return ProviderProfileResponse.model_validate(profile)


@router.get("/me/profile", response_model=ProviderProfileResponse)
async def get_my_profile(session: SessionContext = Depends(require_provider)):
    """Get the authenticated provider's own profile."""
    return ProviderProfileResponse.model_validate(_own_profile(session))


@router.put("/me/profile", response_model=ProviderProfileResponse)
async def update_my_profile(
    data: ProviderProfileUpdate,
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Update non-None fields of the provider's own profile."""
    profile = _own_profile(session)

    for field, value in data.model_dump(exclude_none=True).items():
        setattr(profile, field, value)

    await flush_or_conflict(db, "Provider profile")
    await db.commit()
    await invalidate_profile_cache(redis, profile.id)
    return ProviderProfileResponse.model_validate(profile)


@router.post("/me/availability", response_model=ProviderProfileResponse)
async def set_my_availability(
    data: AvailabilityUpdate,
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Toggle whether admins may assign new bookings to this provider.
    Pass `expected_version` to refuse the write if the profile changed meanwhile.
    """
    profile = _own_profile(session)
    check_expected_version(profile.version, data.expected_version, "Provider profile")

    profile.available = data.available
    await flush_or_conflict(db, "Provider profile")
    await db.commit()
    await invalidate_profile_cache(redis, profile.id)

    logger.info(f"Provider {profile.id} availability set to {data.available}")
    return ProviderProfileResponse.model_validate(profile)


@router.get("/me/bookings")
async def get_my_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """Bookings assigned to the calling provider, newest first."""
    profile = _own_profile(session)

    assigned = select(BookingAssignment.booking_id).where(
        BookingAssignment.provider_id == profile.id
    )
    query = select(BookingRequest).where(BookingRequest.id.in_(assigned))
    if booking_status:
        query = query.where(BookingRequest.status == booking_status)
    query = query.order_by(BookingRequest.created_at.desc())

    rows, total = await paginate(db, query, page, page_size)
    items = await to_booking_responses([row[0] for row in rows], db)
    return page_payload(items, total, page, page_size)


@router.get("/me/stats", response_model=ProviderStatsResponse)
async def get_my_stats(
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """Counts of assigned bookings by status, plus earnings from completed work."""
    profile = _own_profile(session)
    assigned = select(BookingAssignment.booking_id).where(
        BookingAssignment.provider_id == profile.id
    )

    result = await db.execute(
        select(BookingRequest.status, func.count(BookingRequest.id))
        .where(BookingRequest.id.in_(assigned))
        .group_by(BookingRequest.status)
    )
    by_status = {row[0]: row[1] for row in result.all()}

    earnings = await db.scalar(
        select(func.coalesce(func.sum(BookingRequest.estimated_price), 0)).where(
            BookingRequest.id.in_(assigned),
            BookingRequest.status == BookingStatus.COMPLETED,
        )
    )

    total = sum(by_status.values())
    completed = by_status.get(BookingStatus.COMPLETED, 0)
    return ProviderStatsResponse(
        total_bookings=total,
        assigned_bookings=by_status.get(BookingStatus.ASSIGNED, 0),
        in_progress_bookings=by_status.get(BookingStatus.IN_PROGRESS, 0),
        completed_bookings=completed,
        cancelled_bookings=by_status.get(BookingStatus.CANCELLED, 0),
        total_earnings=Decimal(str(earnings or 0)),
        completion_rate=round(completed / total * 100, 1) if total else 0.0,
    )


# ── Public Directory ──────────────────────────────────────────

@router.get("")
async def list_providers(
    category: Optional[ServiceCategory] = None,
    available: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Approved providers, best rated first. Filter by trade and availability."""
    query = (
        select(ProviderProfile)
        .join(User, User.id == ProviderProfile.user_id)
        .where(User.status == ApprovalStatus.APPROVED)
    )
    if category:
        query = query.where(ProviderProfile.category == category)
    if available is not None:
        query = query.where(ProviderProfile.available == available)
    query = query.order_by(ProviderProfile.rating.desc(), ProviderProfile.created_at.asc())

    rows, total = await paginate(db, query, page, page_size)
    items = [ProviderProfileResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.get("/{provider_id}", response_model=ProviderProfileResponse)
async def get_provider(
    provider_id: UUID,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Get a provider's public profile. Cached until the profile changes."""
    cache = RedisCache(redis)
    cached = await cache.get(_cache_key(provider_id))
    if cached:
        return ProviderProfileResponse(**cached)

    profile = await _get_profile_or_404(provider_id, db)
    owner = await db.scalar(select(User).where(User.id == profile.user_id))
    if not owner or not owner.is_approved:
        raise NotFoundError("Provider not found")

    response = ProviderProfileResponse.model_validate(profile)
    await cache.set(_cache_key(provider_id), response.model_dump(mode="json"))
    return response
