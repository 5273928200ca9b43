"""
main.py
FastAPI application entry point.
Registers all routers, middleware, startup/shutdown events.

Production-ready features:
- Structured JSON logging with request IDs
- Rate limiting for unauthenticated traffic
- Prometheus metrics
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError

from config.database import close_db, init_db
from config.redis_client import RedisCache, close_redis, init_redis
from config.settings import settings
from shared.exceptions import RemoteError

# Service routers
from services.auth.router import router as auth_router
from services.user.router import router as user_router
from services.registration.router import router as registration_router
from services.provider.router import router as provider_router
from services.booking.router import router as booking_router
from services.support.router import router as support_router
from services.contact.router import router as contact_router
from services.admin.router import router as admin_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


# Configure structured logging for every module logger
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    handlers=[handler],
)
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME}...")

    # Initialize connections
    await init_db()
    logger.info("Database connected")

    await init_redis()
    logger.info("Redis connected")

    await seed_admin()

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    # Cleanup
    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Home Services Marketplace API

Customers request home services, admins approve accounts and assign
providers, providers carry the work through to completion:
- **Auth**: email/password sign-up, admin approval, JWT (15min) + refresh tokens
- **Providers**: multi-step registration wizard, profile, availability
- **Bookings**: submission → admin assignment → in progress → completed
- **Support**: tickets moved open → in progress → resolved → closed
- **Admin**: approval queue, assignment, analytics, audit log

### Authentication
All protected endpoints require `Authorization: Bearer <access_token>` header.
Get a token via `POST /auth/signin` once your account is approved.

### Roles
- `customer`: Submit bookings, open tickets
- `provider`: Manage profile and availability, update assigned bookings
- `admin`: Approve accounts, assign providers, run the platform
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (order matters, outermost first) ───────────────
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for distributed tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Per-IP limit for unauthenticated traffic (sign-in, sign-up,
        contact form). Authenticated requests are limited upstream.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        if request.url.path in skip_paths:
            return await call_next(request)
        if request.headers.get("Authorization", "").startswith("Bearer "):
            return await call_next(request)

        from config.redis_client import redis_client
        if redis_client:
            client_ip = request.client.host if request.client else "unknown"
            try:
                allowed = await RedisCache(redis_client).check_rate_limit(
                    f"rate:unauth:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE
                )
            except Exception as e:
                # Fail open: a Redis outage must not take the API down with it
                logger.error(f"Rate limit check failed: {str(e)}")
                allowed = True

            if not allowed:
                logger.warning(f"Rate limit exceeded for IP {client_ip}")
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded. Please slow down."},
                    headers={"Retry-After": "60"},
                )

        return await call_next(request)

    # ── Exception Handlers ─────────────────────────────────────────

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Persistence failures all surface as the same generic 503."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Database error: {str(exc)}", exc_info=True)
        error = RemoteError()
        return JSONResponse(
            status_code=error.status_code,
            content={"detail": error.detail, "request_id": request_id},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Exception: {str(exc)}", exc_info=True)

        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        return JSONResponse(
            status_code=500,
            content={
                "detail": detail,
                "request_id": request_id,
            },
        )

    # ── Routes ────────────────────────────────────────────────────

    # Health check (public)
    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        from config.redis_client import redis_client
        from sqlalchemy import text
        from config.database import AsyncSessionLocal

        checks = {"status": "ok", "version": settings.APP_VERSION}

        # DB check
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception:
            checks["database"] = "error"
            checks["status"] = "degraded"

        # Redis check
        try:
            if not redis_client:
                raise RuntimeError("Redis not initialized")
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception:
            checks["redis"] = "error"
            checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    # Register all service routers
    app.include_router(auth_router)
    app.include_router(user_router)
    # Registration before the provider router so /providers/{id} never shadows it
    app.include_router(registration_router)
    app.include_router(provider_router)
    app.include_router(booking_router)
    app.include_router(support_router)
    app.include_router(contact_router)
    app.include_router(admin_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    # Instrument FastAPI with Prometheus metrics
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Admin Seeder ──────────────────────────────────────────────

async def seed_admin():
    """Create the configured admin account on first run, approved."""
    if not (settings.ADMIN_SEED_EMAIL and settings.ADMIN_SEED_PASSWORD):
        return

    from config.database import get_db_context
    from shared.models.models import ApprovalStatus, User, UserRole
    from shared.utils.security import hash_password
    from sqlalchemy import select

    email = settings.ADMIN_SEED_EMAIL.strip().lower()
    async with get_db_context() as db:
        existing = await db.scalar(select(User).where(User.email == email))
        if existing:
            return  # Already seeded

        db.add(User(
            email=email,
            password_hash=hash_password(settings.ADMIN_SEED_PASSWORD),
            full_name=settings.ADMIN_SEED_NAME,
            role=UserRole.ADMIN,
            status=ApprovalStatus.APPROVED,
        ))
    logger.info(f"Seeded admin account {email}")


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
