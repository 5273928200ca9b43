"""
services/registration/router.py
Provider registration wizard: account → business info → professional
details → description → submit. Drafts live in Redis until submitted.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from services.auth.router import create_account
from services.provider.router import create_profile, invalidate_profile_cache
from services.registration import wizard
from shared.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.middleware.auth import SessionContext, get_optional_session
from shared.models.models import ProviderProfile, UserRole
from shared.schemas.schemas import (
    ProviderProfileCreate,
    ProviderProfileResponse,
    RegistrationDraftResponse,
    RegistrationResultResponse,
    UserResponse,
)
from shared.utils.versioning import check_expected_version, flush_or_conflict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers/registration", tags=["Provider Registration"])


# ── Helpers ───────────────────────────────────────────────────

async def _load_draft(
    draft_id: str,
    cache: RedisCache,
    session: Optional[SessionContext],
) -> dict:
    draft = await cache.load_draft(draft_id)
    if not draft:
        raise NotFoundError("Registration draft not found or expired")
    # A draft started by a signed-in provider belongs to that provider only
    if draft["user_id"] and (not session or str(session.user.id) != draft["user_id"]):
        raise AuthorizationError("This registration draft belongs to another account")
    return draft


def _check_caller(session: Optional[SessionContext]) -> None:
    if session and session.role != UserRole.PROVIDER:
        raise AuthorizationError("Only provider accounts can register a business profile")


# ── Endpoints ─────────────────────────────────────────────────

@router.post("", response_model=RegistrationDraftResponse, status_code=status.HTTP_201_CREATED)
async def start_registration(
    session: Optional[SessionContext] = Depends(get_optional_session),
    redis=Depends(get_redis),
):
    """
    Start a wizard draft.
    - Anonymous: create mode, starting at the account step.
    - Signed-in provider without a profile: create mode at business info.
    - Signed-in provider with a profile: edit mode, pre-filled.
    """
    _check_caller(session)

    draft = wizard.new_draft(
        user_id=str(session.user.id) if session else None,
        profile=session.provider_profile if session else None,
    )
    await RedisCache(redis).save_draft(draft["draft_id"], draft)

    logger.info(f"Registration draft {draft['draft_id']} started in {draft['mode']} mode")
    return RegistrationDraftResponse(**wizard.public_view(draft))


@router.get("/{draft_id}", response_model=RegistrationDraftResponse)
async def get_registration(
    draft_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    redis=Depends(get_redis),
):
    """Current step, completed steps, and the values entered so far."""
    draft = await _load_draft(draft_id, RedisCache(redis), session)
    return RegistrationDraftResponse(**wizard.public_view(draft))


@router.put("/{draft_id}/steps/{step}", response_model=RegistrationDraftResponse)
async def save_registration_step(
    draft_id: str,
    step: str,
    payload: dict[str, Any] = Body(...),
    session: Optional[SessionContext] = Depends(get_optional_session),
    redis=Depends(get_redis),
):
    """
    Validate and save one step, then advance. An invalid step (for example
    a password that does not match its confirmation) returns 422 and leaves
    the draft untouched.
    """
    cache = RedisCache(redis)
    draft = await _load_draft(draft_id, cache, session)

    draft = wizard.save_step(draft, step, payload)
    await cache.save_draft(draft_id, draft)
    return RegistrationDraftResponse(**wizard.public_view(draft))


@router.post("/{draft_id}/back", response_model=RegistrationDraftResponse)
async def go_back(
    draft_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    redis=Depends(get_redis),
):
    """Step back without validating anything."""
    cache = RedisCache(redis)
    draft = await _load_draft(draft_id, cache, session)

    draft = wizard.go_back(draft)
    await cache.save_draft(draft_id, draft)
    return RegistrationDraftResponse(**wizard.public_view(draft))


@router.post("/{draft_id}/submit", response_model=RegistrationResultResponse)
async def submit_registration(
    draft_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Create mode: create the provider account (pending approval) and its
    profile in a single transaction, so a failed profile never leaves an
    orphan account behind.
    Edit mode: update the caller's own profile, refused if it changed
    since the draft was started.
    """
    cache = RedisCache(redis)
    draft = await _load_draft(draft_id, cache, session)

    missing = wizard.missing_steps(draft)
    if missing:
        raise ValidationError(f"Complete these steps first: {', '.join(missing)}")

    fields = ProviderProfileCreate.model_validate(wizard.profile_fields(draft)).model_dump()

    if draft["mode"] == wizard.MODE_EDIT:
        profile = session.provider_profile
        if not profile:
            raise NotFoundError("Provider profile not found")
        check_expected_version(profile.version, draft["profile_version"], "Provider profile")
        for field, value in fields.items():
            setattr(profile, field, value)
        await flush_or_conflict(db, "Provider profile")
        user = session.user
    elif draft["user_id"]:
        user = session.user
        existing = await db.scalar(
            select(ProviderProfile.id).where(ProviderProfile.user_id == user.id)
        )
        if existing:
            raise ConflictError("Provider profile already exists")
        profile = create_profile(db, user.id, fields, available=settings.PROVIDER_WIZARD_AVAILABLE)
        await db.flush()
    else:
        account = draft["data"]["account"]
        user = await create_account(
            db,
            email=account["email"],
            password_hash=account["password_hash"],
            full_name=account["full_name"],
            role=UserRole.PROVIDER,
            phone=account.get("phone"),
        )
        profile = create_profile(db, user.id, fields, available=settings.PROVIDER_WIZARD_AVAILABLE)
        await db.flush()

    await db.commit()
    await cache.delete_draft(draft_id)
    await invalidate_profile_cache(redis, profile.id)

    logger.info(f"Registration draft {draft_id} submitted ({draft['mode']}) for user {user.id}")
    return RegistrationResultResponse(
        mode=draft["mode"],
        user=UserResponse.model_validate(user),
        profile=ProviderProfileResponse.model_validate(profile),
    )
