"""
api/main.py -- FastAPI application entry point for CV Portal.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the frontend origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every shared resource once -- stores, token issuer, auth
service -- and attaches them to app.state; shutdown disposes the engines.
The signing secret is read here and handed to the issuer explicitly; nothing
below this layer reads configuration on its own.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.cv import router as cv_router
from auth.errors import AuthError, InternalError, ServiceUnavailable
from auth.mailer import LoggingResetMailer
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenConfig, TokenIssuer
from core.config import get_settings
from cv.store import CVStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cvportal.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create stores and the auth service on startup; dispose them on shutdown."""
    settings = get_settings()
    logger.info("CV Portal API starting up")
    limiter.enabled = settings.rate_limit_enabled

    app.state.user_store = UserStore(settings.database_url, settings.db_timeout_seconds)
    app.state.session_store = SessionStore(app.state.user_store.engine)
    app.state.cv_store = CVStore(settings.database_url, settings.db_timeout_seconds)
    app.state.auth = AuthService(
        users=app.state.user_store,
        sessions=app.state.session_store,
        issuer=TokenIssuer(TokenConfig.from_settings(settings)),
        mailer=LoggingResetMailer(),
        reset_expire_seconds=settings.reset_token_expire_seconds,
    )
    logger.info("Stores initialized (token lifetime=%ss)", settings.token_expire_seconds)

    yield

    app.state.cv_store.close()
    app.state.user_store.close()
    logger.info("CV Portal API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CV Portal API",
    description="Employee CV storage and search with role-based access.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(cv_router, prefix="/api", tags=["CV"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse.build(code, message, detail).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth-layer failure (401/403/400/503) with its stable code."""
    if exc.status_code >= 500:
        logger.warning("%s on %s %s", exc.code, request.method, request.url.path)
    else:
        logger.info("%s on %s %s", exc.code, request.method, request.url.path)
    return _error(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests. Please try again later.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when the body or query params fail validation."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for HTTP exceptions raised by routes or the router.

    Route handlers raise HTTPException with detail={"code": ..., "message": ...}.
    Plain string details (e.g. the router's own 404) get a generic code.
    """
    if isinstance(exc.detail, dict):
        return _error(
            exc.status_code,
            str(exc.detail.get("code", f"http_{exc.status_code}")),
            str(exc.detail.get("message", "")),
        )
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(OperationalError)
@app.exception_handler(PoolTimeoutError)
async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Store connectivity failures and timeouts are transient, never auth failures."""
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    err = ServiceUnavailable()
    return _error(err.status_code, err.code, err.message)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only. The response body carries it as
    `detail` only when DEBUG=true.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    err = InternalError()
    return _error(err.status_code, err.code, err.message, str(exc) if get_settings().debug else None)


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok"
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except (OperationalError, PoolTimeoutError):
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
