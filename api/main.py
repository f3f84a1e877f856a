"""
api/main.py -- FastAPI application factory for Clubhouse.

Run with:  uvicorn asgi:app --reload

create_app() takes an explicit Settings instance (and optionally a ready-made
UserStore) and builds everything from it: the immutable SecurityServices, the
middleware stack, the routers and the exception handlers. Nothing below reads
the environment directly, so tests can build as many differently-configured
apps as they need.

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- credentialed CORS for the browser client
  4. SlowAPIMiddleware     -- default limits; route limits live on the endpoints
  5. AuthPipelineMiddleware-- session, principal resolution, CSRF gate, cookies

Lifespan opens the user store (and seeds the bootstrap admin when configured)
on startup and closes it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import build_limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import build_login_router, router as auth_router
from api.routes.users import router as users_router
from auth.csrf import CSRF_HEADER
from auth.errors import AuthError
from auth.middleware import AuthPipelineMiddleware, SecurityServices
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings, get_settings

__version__ = "1.0.0"

API_PREFIX = "/api"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("clubhouse.api")


def _seed_admin(store: UserStore, settings: Settings) -> None:
    """Create the bootstrap admin from ADMIN_USERNAME / ADMIN_PASSWORD on an empty DB."""
    if not (settings.admin_username and settings.admin_password):
        return
    if store.has_users():
        return
    store.create_user(
        User(
            username=settings.admin_username,
            role="admin",
            hashed_password=hash_password(settings.admin_password),
            created_by="system",
        )
    )
    logger.info("Bootstrap admin %s created", settings.admin_username)


def create_app(settings: Settings | None = None, user_store: UserStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    security = SecurityServices.from_settings(settings, api_prefix=API_PREFIX)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_store = user_store is None
        store = user_store if user_store is not None else UserStore(settings.database_url)
        _seed_admin(store, settings)
        app.state.user_store = store
        logger.info(
            "Clubhouse API starting (environment=%s, secure_cookies=%s)",
            settings.environment,
            security.cookies.secure,
        )

        yield

        if owns_store:
            store.close()
        logger.info("Clubhouse API shutdown complete")

    app = FastAPI(
        title="Clubhouse API",
        description="Club management: players, matches, seasons and rankings.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.security = security
    # SlowAPI looks for app.state.limiter by convention.
    limiter = build_limiter()
    app.state.limiter = limiter

    # -----------------------------------------------------------------------
    # Middleware stack -- each add_middleware() call wraps everything added
    # before it, so register innermost first.
    # -----------------------------------------------------------------------

    app.add_middleware(AuthPipelineMiddleware, services=security)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(build_login_router(limiter, settings.login_rate_limit), prefix=API_PREFIX, tags=["Auth"])
    app.include_router(auth_router, prefix=API_PREFIX, tags=["Auth"])
    app.include_router(users_router, prefix=API_PREFIX, tags=["Users"])

    @app.get(f"{API_PREFIX}/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return API liveness and current version. Not rate limited, no auth."""
        return HealthResponse(version=__version__)

    _register_exception_handlers(app)
    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error": {...}} envelope so API clients can
# parse errors uniformly.
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render the auth taxonomy. Token/CSRF failure reasons are never included."""
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        retry_after = int(getattr(exc, "retry_after", 60))
        response = JSONResponse(
            status_code=429,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="rate_limited",
                    message="Too many requests.",
                    detail=str(exc.detail),
                )
            ).model_dump(),
        )
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="validation_error",
                    message="Request validation failed.",
                    detail=str(exc.errors()),
                )
            ).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Structured detail dicts pass through; anything else is wrapped."""
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(
                    code=f"http_{exc.status_code}",
                    message=str(exc.detail),
                )
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The exception goes to the log only, never to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="internal_error",
                    message="An unexpected error occurred.",
                )
            ).model_dump(),
        )
