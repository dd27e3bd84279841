"""
api/main.py -- FastAPI application entry point for the account service.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for allowed browser origins
  2. log_requests   -- one access-log line per request with latency

Lifespan builds every collaborator from Settings and hands them to
AccountService explicitly; nothing below the app reads configuration on its
own. Shutdown closes them symmetrically.
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

from accounts.images import DirectoryImageStore
from accounts.service import AccountService
from accounts.store import AccountStore
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.passwords import PasswordHasher
from auth.tokens import StaticKeyResolver, TokenService
from core.config import get_settings
from core.errors import (
    AccountServiceError,
    AuthenticationInvalid,
    AuthenticationMissing,
    ConflictError,
    Denied,
    InvalidCredentials,
    InvalidToken,
    NotFoundError,
    ValidationError,
)

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accountsvc.api")

_settings = get_settings()

# Error kind -> HTTP status. The core never sees these numbers.
_STATUS_BY_ERROR: dict[type[AccountServiceError], int] = {
    ValidationError: 422,
    ConflictError: 409,
    NotFoundError: 404,
    InvalidCredentials: 401,
    InvalidToken: 401,
    AuthenticationMissing: 401,
    AuthenticationInvalid: 401,
    Denied: 403,
}


def status_for(exc: AccountServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build store, hasher, token service and account service; tear down on exit."""
    settings = get_settings()
    store = AccountStore(settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_workers=settings.hash_workers)
    tokens = TokenService(
        settings.secret_key,
        key_id=settings.secret_key_id,
        ttl_seconds=settings.token_expire_seconds,
        key_resolver=StaticKeyResolver(settings.verification_keys()),
    )
    app.state.store = store
    app.state.token_service = tokens
    app.state.account_service = AccountService(store, hasher, tokens)
    app.state.image_store = DirectoryImageStore(settings.upload_dir)
    app.state.max_image_bytes = settings.max_image_bytes
    logger.info(
        "Account service started (bcrypt_rounds=%d, token_ttl=%ds, verification_keys=%d)",
        settings.bcrypt_rounds,
        settings.token_expire_seconds,
        len(settings.verification_keys()),
    )

    yield

    hasher.close()
    store.close()
    logger.info("Account service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Account Service API",
    description="User accounts: registration, login, profiles, roles and profile images.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
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

app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AccountServiceError)
async def account_error_handler(request: Request, exc: AccountServiceError) -> JSONResponse:
    """Map a typed core error to its HTTP status and the standard envelope."""
    status_code = status_for(exc)
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
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
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
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
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
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


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database round-trip check."""
    db_ok = request.app.state.store.ping()
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
