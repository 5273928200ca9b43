"""
services/auth/router.py
Email/password authentication endpoints.
Implements: Sign-up → (admin approval) → Sign-in → JWT issue → Refresh → Logout
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.exceptions import AuthError, AuthorizationError, ValidationError
from shared.middleware.auth import SessionContext, TokenData, get_session, get_token_data
from shared.models.models import ApprovalStatus, RefreshToken, User, UserRole
from shared.schemas.schemas import (
    AuthResponse,
    MessageResponse,
    ProviderProfileResponse,
    RefreshRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    TokenResponse,
    UserResponse,
)
from shared.utils.security import (
    as_utc,
    check_password_policy,
    create_access_token,
    create_refresh_token,
    get_token_remaining_ttl,
    hash_password,
    hash_token,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

REFRESH_COOKIE_PATH = "/auth"


# ── Helpers ───────────────────────────────────────────────────

async def _get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


def _existing_account_message(existing: User, requested_role: UserRole) -> str:
    """Explain why an email cannot be registered again."""
    if existing.role != requested_role:
        return (
            f"An account with this email already exists as a {existing.role.value}. "
            "Please select the correct role or use a different email."
        )
    if existing.status == ApprovalStatus.PENDING:
        return "An account with this email is already registered and pending approval."
    if existing.status == ApprovalStatus.REJECTED:
        return "An account with this email was previously rejected. Please contact support."
    return "An account with this email already exists. Please sign in instead."


def _access_refusal(user: User, claimed_role: UserRole) -> Optional[str]:
    """Reason the user may not enter the claimed role's area, or None."""
    if user.role != claimed_role:
        return f"This account is registered as a {user.role.value}. Please select the correct role."
    if user.status == ApprovalStatus.REJECTED:
        return "Your account has been rejected. Please contact support."
    if user.status != ApprovalStatus.APPROVED:
        return "Your account is pending approval. Please wait for admin approval."
    return None


async def create_account(
    db: AsyncSession,
    email: str,
    password_hash: str,
    full_name: str,
    role: UserRole,
    phone: Optional[str] = None,
) -> User:
    """
    Create a user in `pending` status. Shared by sign-up and the provider
    registration wizard. Flushes but does not commit.
    """
    if role == UserRole.ADMIN and not settings.is_admin_email(email):
        raise AuthorizationError("Admin accounts cannot be created through sign-up")

    existing = await _get_user_by_email(db, email)
    if existing:
        raise ValidationError(_existing_account_message(existing, role))

    user = User(
        email=email.lower(),
        password_hash=password_hash,
        full_name=full_name,
        phone=phone,
        role=role,
        # Allow-listed admins are approved at creation, everyone else waits
        status=ApprovalStatus.APPROVED if role == UserRole.ADMIN else ApprovalStatus.PENDING,
    )
    db.add(user)
    await db.flush()
    logger.info(f"Account created: {user.email} as {role.value} ({user.status.value})")
    return user


async def _issue_tokens(
    user: User,
    db: AsyncSession,
    response: Response,
    request: Request,
) -> tuple[str, str, str]:
    """
    Issue access + refresh tokens. Store refresh token in DB and set cookie.
    Returns (access_token, raw_refresh_token, access_jti).
    """
    access_token, jti = create_access_token(
        user_id=str(user.id),
        role=user.role.value,
        email=user.email,
    )

    raw_refresh, hashed_refresh = create_refresh_token()
    expires_at = datetime.now(timezone.utc) + timedelta(
        days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS
    )

    db.add(RefreshToken(
        user_id=user.id,
        token_hash=hashed_refresh,
        expires_at=expires_at,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    ))

    # Set httpOnly cookie for refresh token (web clients)
    response.set_cookie(
        key="refresh_token",
        value=raw_refresh,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        path=REFRESH_COOKIE_PATH,
    )

    return access_token, raw_refresh, jti


async def _terminate_session(
    db: AsyncSession,
    cache: RedisCache,
    raw_refresh: Optional[str],
    jti: Optional[str],
    response: Response,
    ttl: int = settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    user_id: Optional[uuid.UUID] = None,
) -> None:
    """Revoke the refresh token, deny-list the access token, clear the cookie."""
    if jti and ttl > 0:
        await cache.revoke_token(jti, ttl)

    if raw_refresh:
        await db.flush()
        result = await db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_refresh))
        )
        db_token = result.scalar_one_or_none()
        if db_token and (user_id is None or db_token.user_id == user_id):
            db_token.is_revoked = True

    response.delete_cookie(key="refresh_token", path=REFRESH_COOKIE_PATH)


# ── Endpoints ─────────────────────────────────────────────────

@router.post(
    "/signup",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def sign_up(data: SignUpRequest, db: AsyncSession = Depends(get_db)):
    """
    Create an account awaiting admin approval. No session is issued;
    the user signs in once an admin has approved the account.
    """
    check_password_policy(data.password)
    user = await create_account(
        db,
        email=data.email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        role=data.role,
        phone=data.phone,
    )
    await db.commit()
    return UserResponse.model_validate(user)


@router.post("/signin", response_model=AuthResponse, summary="Sign in with email and password")
async def sign_in(
    data: SignInRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Authenticate credentials, then cross-check the claimed role and the
    approval status. A refused session is torn down before the error is
    raised: the refresh token is revoked and the access token deny-listed.
    """
    user = await _get_user_by_email(db, data.email)
    if not user or not verify_password(data.password, user.password_hash):
        raise AuthError("Invalid email or password")

    access_token, raw_refresh, jti = await _issue_tokens(user, db, response, request)

    refusal = _access_refusal(user, data.role)
    if refusal:
        logger.info(f"Sign-in refused for {user.email}: claimed {data.role.value}, "
                    f"is {user.role.value}/{user.status.value}")
        await _terminate_session(db, RedisCache(redis), raw_refresh, jti, response)
        await db.commit()
        raise AuthorizationError(refusal)

    await db.commit()

    return AuthResponse(
        access_token=access_token,
        refresh_token=raw_refresh,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(
    request: Request,
    response: Response,
    data: Optional[RefreshRequest] = None,
    # Accept from cookie (web) or request body (mobile)
    refresh_token_cookie: Optional[str] = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
):
    """
    Issue a new access token using a valid refresh token.
    Implements refresh token rotation: the old token is revoked.
    Approval is re-checked, so a rejected account cannot refresh.
    """
    raw_token = refresh_token_cookie or (data.refresh_token if data else None)
    if not raw_token:
        raise AuthError("Refresh token required")

    result = await db.execute(
        select(RefreshToken).where(
            RefreshToken.token_hash == hash_token(raw_token),
            RefreshToken.is_revoked.is_(False),
        )
    )
    db_token = result.scalar_one_or_none()
    if not db_token:
        raise AuthError("Invalid or revoked refresh token")
    if as_utc(db_token.expires_at) < datetime.now(timezone.utc):
        raise AuthError("Refresh token expired")

    result = await db.execute(select(User).where(User.id == db_token.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthError("User not found")
    if not user.is_approved:
        db_token.is_revoked = True
        await db.commit()
        raise AuthorizationError(f"Account is {user.status.value}")

    # Rotate: revoke old token, issue new ones
    db_token.is_revoked = True

    access_token, _, _ = await _issue_tokens(user, db, response, request)
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout", response_model=MessageResponse, summary="Sign out")
async def logout(
    response: Response,
    data: Optional[RefreshRequest] = None,
    token_data: TokenData = Depends(get_token_data),
    refresh_token_cookie: Optional[str] = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Revoke refresh token + add JWT to deny-list in Redis.
    Clears httpOnly cookie.
    """
    await _terminate_session(
        db,
        RedisCache(redis),
        raw_refresh=refresh_token_cookie or (data.refresh_token if data else None),
        jti=token_data.jti,
        response=response,
        ttl=get_token_remaining_ttl(token_data.payload),
        user_id=token_data.user_id,
    )
    await db.commit()

    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=SessionResponse, summary="Get current session")
async def get_me(session: SessionContext = Depends(get_session)):
    """Returns the authenticated user and, for providers, their profile."""
    profile = session.provider_profile
    return SessionResponse(
        user=UserResponse.model_validate(session.user),
        provider_profile=ProviderProfileResponse.model_validate(profile) if profile else None,
    )
