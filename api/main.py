"""
api/main.py -- FastAPI application entry point for Storekeep.

Exposes account management (registration, activation, login, token refresh,
administration), login sessions, and the product catalog over HTTP.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access-log line per request

Lifespan builds every service from Settings once (build_services) and
attaches them to app.state; route handlers read them from there. Shutdown
disposes the database engines.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.category import router as category_router
from api.routes.product import router as product_router
from api.routes.session import router as session_router
from api.routes.upload import router as upload_router
from auth.accounts import AccountManager
from auth.notify import Notifier, build_notifier
from auth.otp import TotpCodeService
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenIssuer
from catalog.store import CatalogStore
from core.config import Settings, get_settings
from core.errors import AppError

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storekeep.api")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass
class Services:
    settings: Settings
    user_store: UserStore
    catalog: CatalogStore
    tokens: TokenIssuer
    codes: TotpCodeService
    sessions: SessionRegistry
    notifier: Notifier
    accounts: AccountManager

    def close(self) -> None:
        self.user_store.close()
        self.catalog.close()


def build_services(settings: Settings, *, notifier: Optional[Notifier] = None) -> Services:
    """Construct every component from one Settings instance.

    Components receive configuration through their constructors; nothing
    below reads the environment. `notifier` overrides the channel selected
    by settings.otp_channel (tests pass a mock).
    """
    user_store = UserStore(db_url=settings.database_url)
    catalog = CatalogStore(db_url=settings.database_url)
    tokens = TokenIssuer(settings)
    codes = TotpCodeService.from_settings(settings)
    sessions = SessionRegistry(user_store)
    notifier = notifier if notifier is not None else build_notifier(settings)
    accounts = AccountManager(user_store, codes, tokens, sessions, notifier, settings)
    return Services(
        settings=settings,
        user_store=user_store,
        catalog=catalog,
        tokens=tokens,
        codes=codes,
        sessions=sessions,
        notifier=notifier,
        accounts=accounts,
    )


def attach_services(app: FastAPI, services: Services) -> None:
    """Expose each service on app.state under its field name."""
    app.state.settings = services.settings
    app.state.user_store = services.user_store
    app.state.catalog = services.catalog
    app.state.tokens = services.tokens
    app.state.sessions = services.sessions
    app.state.accounts = services.accounts


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup, dispose engines on shutdown."""
    logger.info("Storekeep API starting up")
    services = build_services(get_settings())
    attach_services(app, services)
    logger.info(
        "Services initialized (otp_channel=%s, debug=%s)",
        services.settings.otp_channel,
        services.settings.debug,
    )

    yield

    services.close()
    logger.info("Storekeep API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="Storekeep API",
    description="Accounts, login sessions and product catalog.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api-docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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

app.include_router(auth_router, tags=["Auth"])
app.include_router(session_router, tags=["Session"])
app.include_router(category_router, tags=["Category"])
app.include_router(product_router, tags=["Products"])
app.include_router(upload_router, tags=["Upload"])
# Uploaded files are served by the static mount in asgi.py.

# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _envelope(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map a domain error to its HTTP status and error code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.error_code, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _envelope(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The exception is logged with its traceback; the client only receives a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "unavailable"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database = "unavailable"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
