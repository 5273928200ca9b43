"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.

Every protected request builds one SessionContext from the database:
the user's role and approval status are re-checked on each call, so an
account rejected after sign-in loses access on its next request.
"""

import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from shared.exceptions import AuthError, AuthorizationError
from shared.models.models import ProviderProfile, User, UserRole
from shared.utils.security import verify_access_token

security = HTTPBearer(auto_error=False)


class TokenData:
    def __init__(self, payload: dict, raw: str):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.role: UserRole = UserRole(payload["role"])
        self.email: str = payload["email"]
        self.jti: str = payload["jti"]
        self.payload = payload
        self.raw = raw


class SessionContext:
    """Snapshot of who is calling, loaded once per request."""

    def __init__(
        self,
        user: User,
        token: TokenData,
        provider_profile: Optional[ProviderProfile] = None,
    ):
        self.user = user
        self.token = token
        self.provider_profile = provider_profile

    @property
    def role(self) -> UserRole:
        return self.user.role

    @property
    def is_admin(self) -> bool:
        return self.user.role == UserRole.ADMIN


async def _decode(credentials: HTTPAuthorizationCredentials, redis) -> TokenData:
    try:
        payload = verify_access_token(credentials.credentials)
    except JWTError:
        raise AuthError("Invalid or expired token")

    # Check if token has been revoked (logged out)
    jti = payload.get("jti")
    if jti and await RedisCache(redis).is_token_revoked(jti):
        raise AuthError("Token has been revoked")

    try:
        return TokenData(payload, credentials.credentials)
    except (KeyError, ValueError, TypeError, AttributeError):
        raise AuthError("Malformed token")


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis=Depends(get_redis),
) -> TokenData:
    """
    Extract and validate JWT from Authorization header.
    Checks deny-list in Redis to handle revoked tokens (logout).
    """
    if not credentials:
        raise AuthError("Authentication required")
    return await _decode(credentials, redis)


async def _load_session(token_data: TokenData, db: AsyncSession) -> SessionContext:
    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthError("User not found")
    if user.role != token_data.role:
        raise AuthorizationError("Account role has changed. Please sign in again.")
    if not user.is_approved:
        raise AuthorizationError(f"Account is {user.status.value}")

    profile = None
    if user.role == UserRole.PROVIDER:
        result = await db.execute(
            select(ProviderProfile).where(ProviderProfile.user_id == user.id)
        )
        profile = result.scalar_one_or_none()

    return SessionContext(user, token_data, profile)


async def get_session(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    """Load the caller's current identity, role, and provider profile."""
    return await _load_session(token_data, db)


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> Optional[SessionContext]:
    """Returns the session if a bearer token was sent, None otherwise."""
    if not credentials:
        return None
    token_data = await _decode(credentials, redis)
    return await _load_session(token_data, db)


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(
        self,
        session: SessionContext = Depends(get_session),
    ) -> SessionContext:
        if session.role not in self.roles:
            raise AuthorizationError(f"Required role: {[r.value for r in self.roles]}")
        return session


# Convenience role dependencies
require_customer = RoleRequired(UserRole.CUSTOMER, UserRole.ADMIN)
require_provider = RoleRequired(UserRole.PROVIDER)
require_admin = RoleRequired(UserRole.ADMIN)
