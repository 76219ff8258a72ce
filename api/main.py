"""
api/main.py -- FastAPI application entry point for AreaGate.

Exposes the auth core (sessions, magic links, role/group policy) and the
area-scoped console resources (view groups, custom maps, preferences) over
HTTP for the console frontend.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- credentialed CORS for the frontend origin(s)
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every component once from Settings and stores them on
app.state; shutdown disposes both database engines.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.custom_maps import router as custom_maps_router
from api.routes.v1.preferences import router as preferences_router
from api.routes.v1.tokens import router as tokens_router
from api.routes.v1.users import router as users_router
from api.routes.v1.view_groups import router as view_groups_router
from auth.codec import TokenCodec
from auth.exceptions import AuthError
from auth.magic_links import MagicLinkManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import Settings, get_settings
from workspace.audit import AuditRecorder
from workspace.store import WorkspaceStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("areagate.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def wire_app_state(app: FastAPI, settings: Settings, user_store: UserStore, workspace_store: WorkspaceStore) -> None:
    """Build every component from Settings and attach it to app.state.

    Settings are read once here and passed explicitly into each constructor.
    Route handlers only ever reach components through request.app.state.
    Tests call this with in-memory stores from a patched lifespan.
    """
    codec = TokenCodec(settings.session_secret, settings.token_secret)
    sessions = SessionManager(
        codec,
        user_store,
        lifetime_seconds=settings.session_lifetime_seconds,
        secure_cookies=settings.secure_cookies,
    )
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.workspace = workspace_store
    app.state.sessions = sessions
    app.state.magic_links = MagicLinkManager(
        codec,
        user_store,
        sessions,
        lifetime_seconds=settings.magic_link_lifetime_seconds,
        backend_url=settings.backend_url,
    )
    app.state.audit = AuditRecorder(workspace_store)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Settings validation happens first so a missing or weak secret
    stops the process before any store is opened.
    """
    logger.info("AreaGate API starting up")
    settings = get_settings()
    user_store = UserStore(settings.auth_db_url) if settings.auth_db_url else UserStore()
    workspace_store = WorkspaceStore(settings.workspace_db_url) if settings.workspace_db_url else WorkspaceStore()
    wire_app_state(app, settings, user_store, workspace_store)
    if not user_store.has_users():
        logger.warning("No users exist yet -- create the first admin with: python main.py create-user")
    logger.info(
        "Auth initialized (session lifetime %ds, magic-link lifetime %ds, secure cookies=%s)",
        settings.session_lifetime_seconds,
        settings.magic_link_lifetime_seconds,
        settings.secure_cookies,
    )

    yield

    workspace_store.close()
    user_store.close()
    logger.info("AreaGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AreaGate API",
    description="Authentication and area-scoped authorization for the surveillance console.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# CORS is read from Settings at import time; credentials are allowed because
# the session travels as a cookie. A wildcard origin is never combined with
# allow_credentials.
# ---------------------------------------------------------------------------


def _cors_origins() -> list[str]:
    try:
        return get_settings().allowed_origins()
    except ValueError:
        # Settings failed validation; lifespan will raise the real error on startup.
        return []


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status and latency. Query strings are never logged:
# /verify and /tokens/verify carry magic-link tokens there.
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
app.include_router(tokens_router, prefix="/api/v1", tags=["Magic links"])
# preferences before users: /users/me/... must win over /users/{user_id}.
app.include_router(preferences_router, prefix="/api/v1", tags=["Preferences"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(view_groups_router, prefix="/api/v1", tags=["View groups"])
app.include_router(custom_maps_router, prefix="/api/v1", tags=["Custom maps"])
# Browser redirect routes are mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map every auth/policy error to its fixed status and code.

    5xx errors were already logged with their cause where they were raised;
    the response carries only the generic message.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s", type(exc).__name__, request.method, request.url.path)
    elif exc.status_code == 403:
        logger.info("Denied %s %s: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail; use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures become 500 internal_error; the driver message is only logged."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, current version and database reachability."""
    try:
        request.app.state.user_store.ping()
        request.app.state.workspace.ping()
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        return HealthResponse(status="degraded", version=API_VERSION, database="unreachable")
    return HealthResponse(version=API_VERSION)
