"""
api/main.py -- FastAPI application entry point for the admin auth service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route, per-IP limits from api.limiter

Lifespan constructs every auth component exactly once (stores, per-email
rate limiter, session manager, audit logger, login service), starts the
rate-limit purge task, and tears everything down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.audit import router as audit_router
from api.routes.v1.auth import router as auth_router
from audit.logger import AuditLogger
from audit.store import AuditStore
from auth.dependencies import get_current_session
from auth.models import Session
from auth.ratelimit import LoginRateLimiter
from auth.service import LoginService
from auth.sessions import SessionManager
from auth.store import AdminStore
from core.config import Settings, get_settings
from core.errors import AuthError, ErrorKind

_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("adminauth.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: float) -> None:
    """Drop idle per-email rate-limit entries every `interval` seconds.

    Runs as a background asyncio task started in lifespan startup.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. purge_stale() takes the
    same lock as the request path, so it is safe against concurrent logins.
    """
    while True:
        await asyncio.sleep(interval)
        removed = app.state.rate_limiter.purge_stale()
        if removed:
            logger.info("Purged %d stale login rate-limit entries", removed)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_components(app: FastAPI, settings: Settings) -> None:
    """Construct the auth core and attach it to app.state.

    Order matters: the login service is built last because it holds
    references to every other component.
    """
    app.state.admin_store = AdminStore(settings.database_url, timeout=settings.db_timeout_seconds)
    app.state.audit_store = AuditStore(settings.audit_store_url, timeout=settings.db_timeout_seconds)
    app.state.audit_logger = AuditLogger(
        app.state.audit_store,
        timeout=settings.audit_write_timeout_seconds,
        max_pending=settings.audit_max_pending_writes,
    )
    app.state.rate_limiter = LoginRateLimiter(
        threshold=settings.login_failure_threshold,
        base_delay=settings.lockout_base_seconds,
        max_delay=settings.lockout_max_seconds,
        inactivity_window=settings.rate_limit_inactivity_seconds,
    )
    app.state.session_manager = SessionManager(
        settings.secret_key,
        lifetime_seconds=settings.session_lifetime_seconds,
        cookie_name=settings.session_cookie_name,
        secure_cookies=settings.secure_cookies,
    )
    app.state.login_service = LoginService(
        admin_store=app.state.admin_store,
        rate_limiter=app.state.rate_limiter,
        sessions=app.state.session_manager,
        audit=app.state.audit_logger,
    )


def teardown_components(app: FastAPI) -> None:
    app.state.rate_limiter.clear()
    app.state.audit_logger.shutdown()
    app.state.audit_store.close()
    app.state.admin_store.close()


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The purge task is started after the limiter exists and
    cancelled before the limiter is cleared.
    """
    settings = get_settings()
    logger.info("Admin auth API starting up")
    build_components(app, settings)
    if not app.state.admin_store.has_admins():
        logger.warning("No admin accounts exist yet -- create one with: python main.py create-admin")
    logger.info(
        "Auth initialized (threshold=%d, lockout=%.0fs..%.0fs, session=%ds)",
        settings.login_failure_threshold,
        settings.lockout_base_seconds,
        settings.lockout_max_seconds,
        settings.session_lifetime_seconds,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.rate_limit_purge_interval_seconds))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    teardown_components(app)
    logger.info("Admin auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Admin Auth API",
    description="Admin login with progressive brute-force lockout, signed sessions, and an audit trail.",
    version=_VERSION,
    lifespan=lifespan,
    # Disable built-in /docs and /redoc so we can add auth protection.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status, and latency for every request. Bodies are never
# logged -- they contain passwords.
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(audit_router, prefix="/api/v1", tags=["Audit"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(session: Session = Depends(get_current_session)):
    """Swagger UI -- requires a valid admin session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Admin Auth API")


@app.get("/redoc", include_in_schema=False)
async def redoc(session: Session = Depends(get_current_session)):
    """ReDoc UI -- requires a valid admin session."""
    return get_redoc_html(openapi_url="/openapi.json", title="Admin Auth API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an AuthError by dispatching on its kind.

    Only whitelisted detail keys reach the client. INFRASTRUCTURE details are
    for the operational log and are never serialized.
    """
    error = ErrorDetail(code=exc.code, message=exc.message)
    if exc.kind is ErrorKind.INVALID_CREDENTIALS:
        error = ErrorDetail(
            code=exc.code,
            message=exc.message,
            remaining_attempts=exc.details.get("remaining_attempts"),
        )
    elif exc.kind is ErrorKind.RATE_LIMITED:
        error = ErrorDetail(code=exc.code, message=exc.message, retry_after=exc.details.get("retry_after"))
    elif exc.kind is ErrorKind.INFRASTRUCTURE:
        logger.error(
            "Infrastructure failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.details.get("internal", "unknown"),
        )

    response = _error_response(exc.status_code, error)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    if exc.kind is ErrorKind.RATE_LIMITED:
        response.headers["Retry-After"] = str(exc.details.get("retry_after", 1))
    elif exc.kind is ErrorKind.SESSION_INVALID:
        # Drop a stale or forged cookie so the browser stops replaying it.
        sessions: SessionManager | None = getattr(request.app.state, "session_manager", None)
        if sessions is not None and request.cookies.get(sessions.cookie_name):
            sessions.revoke(response)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 invalid_input when the body or query params fail validation.

    Only field locations and messages are echoed back -- pydantic's error
    records also contain the raw input, which for /login is the password.
    """
    summary = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
    )
    invalid = AuthError(ErrorKind.INPUT_VALIDATION, message="Invalid request data.")
    return _error_response(
        invalid.status_code,
        ErrorDetail(code=invalid.code, message=invalid.message, detail=summary or None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when the per-IP throttle trips.

    Same envelope and code as the per-email lockout, so clients handle both
    the same way.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(
        429,
        ErrorDetail(code="rate_limited", message="Too many requests.", retry_after=retry_after),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions."""
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return _error_response(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorDetail(code="internal_error", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit applied -- health checks from load balancers and monitoring
# systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability.

    Declared sync: ping() blocks on the database, so it runs in the threadpool.
    """
    admin_store: AdminStore | None = getattr(request.app.state, "admin_store", None)
    database = "ok" if admin_store is not None and admin_store.ping() else "error"
    return HealthResponse(version=_VERSION, components={"app": "ok", "database": database})
