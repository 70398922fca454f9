"""
api/main.py -- FastAPI application entry point for FitZone auth.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. log_requests          -- method, path, status, latency
  3. session_scope         -- attaches a RequestSession to request.state and
                              commits it (store + Set-Cookie) after the route

Lifespan builds the stores and services, starts the purge task, and tears
everything down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.remember import RememberTokenManager
from auth.sessions import CookiePolicy, RequestSession, SessionManager, SessionStore
from auth.store import CredentialStore, SqlSessionStore
from auth.verifier import CredentialVerifier
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("fitzone.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, store: CredentialStore, session_store: SessionStore) -> None:
    """Attach the auth services to app.state.

    Shared by the real lifespan and the test lifespan so both run the exact
    same object graph, only with different stores underneath.
    """
    settings = get_settings()
    app.state.credential_store = store
    app.state.session_store = session_store
    app.state.verifier = CredentialVerifier(store)
    app.state.remember_tokens = RememberTokenManager(store, lifetime=timedelta(days=settings.remember_token_days))
    app.state.session_manager = SessionManager(
        session_store,
        CookiePolicy(name=settings.session_cookie_name, secure=settings.secure_cookies),
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Drop expired remember tokens and idle sessions every purge interval.

    Expired rows are already invisible to validation; this only reclaims space.
    The deletes are blocking store I/O and run in the threadpool.
    CancelledError from task.cancel() on shutdown unwinds the loop.
    """
    while True:
        await asyncio.sleep(get_settings().purge_interval_seconds)
        try:
            tokens = await run_in_threadpool(app.state.remember_tokens.purge_expired)
            sessions = await run_in_threadpool(app.state.session_store.purge_expired)
        except Exception:
            logger.exception("Purge of expired auth records failed")
            continue
        logger.info("Purged %d expired remember tokens and %d idle sessions", tokens, sessions)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime."""
    settings = get_settings()
    logger.info("FitZone auth API starting up")
    store = CredentialStore(settings.database_url)
    wire_services(app, store, SqlSessionStore(store.engine, settings.session_ttl_seconds))
    logger.info("Auth stores initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    store.close()
    logger.info("FitZone auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FitZone Auth API",
    description="Credential login, server-side sessions, and remember-me tokens.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# @app.middleware("http") functions registered later wrap the ones registered
# earlier, and add_middleware() wraps everything registered before it. The
# session middleware is declared first so it sits innermost, closest to the
# routes; TrustedHost is added last so it runs first.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def session_scope(request: Request, call_next):
    """Give every request its own RequestSession and commit it afterwards.

    Nothing is loaded here -- the SessionManager starts the session lazily on
    first use, so requests that never touch the session never hit the store.
    The commit is blocking store I/O and runs in the threadpool, like the
    sync route handlers themselves.
    """
    manager: SessionManager = request.app.state.session_manager
    session = RequestSession(request.cookies.get(manager.cookie.name))
    request.state.session = session
    response = await call_next(request)
    await run_in_threadpool(manager.commit, session, response)
    return response


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


app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


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

    Dependencies raise HTTPException with a {"code", "message"} dict as detail;
    that dict is used directly as the error field.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
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
# Defined directly in main.py so it is reachable regardless of router
# registration state. Does not touch the session.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    try:
        database = "ok" if request.app.state.credential_store.ping() else "error"
    except Exception:
        logger.warning("Health check database ping failed", exc_info=True)
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
