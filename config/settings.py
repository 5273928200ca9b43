"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "Home Services Marketplace"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30

    # ── Redis ────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_TTL: int = 300                  # 5 minutes
    REGISTRATION_DRAFT_TTL: int = 3600          # 1 hour

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # ── Frontend ─────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:5173"
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # ── Rate Limiting ────────────────────────────────────────
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 60

    # ── Identity ─────────────────────────────────────────────
    # Addresses allowed to sign up with the admin role
    ADMIN_EMAILS: str = ""
    # Optional admin record created at startup when missing
    ADMIN_SEED_EMAIL: Optional[str] = None
    ADMIN_SEED_PASSWORD: Optional[str] = None
    ADMIN_SEED_NAME: str = "Platform Admin"
    PASSWORD_MIN_LENGTH: int = 6

    # ── Business Config ──────────────────────────────────────
    # Availability given to a new provider profile, per creation path
    PROVIDER_SIGNUP_AVAILABLE: bool = False
    PROVIDER_WIZARD_AVAILABLE: bool = True

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def admin_emails_list(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def is_admin_email(self, email: str) -> bool:
        allowed = self.admin_emails_list
        if self.ADMIN_SEED_EMAIL:
            allowed.append(self.ADMIN_SEED_EMAIL.strip().lower())
        return email.strip().lower() in allowed


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance; call this everywhere."""
    return Settings()


settings = get_settings()
