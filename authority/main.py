"""Credential authority FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to authority/health.py
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()             → app.state.config
  2. create_ledger()           → app.state.ledger (RuntimeError on schema mismatch)
  3. create_notifier()         → app.state.notifier
  4. CredentialAuthority(...)  → app.state.authority
  5. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close notifier → close ledger
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from authority.api.errors import auth_error_handler
from authority.api.limiter import limiter
from authority.api.router import internal_router, public_router
from authority.config import Config, load_config
from authority.constants import SERVICE_VERSION
from authority.core.authority import CredentialAuthority
from authority.errors import AuthError
from authority.health import router as health_router
from authority.ledger.factory import create_ledger
from authority.notify.factory import create_notifier
from authority.utils.logger import bind_request_id, configure_logging, get_logger, reset_request_id
from authority.utils.ulid import generate_ulid

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("Credential authority starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    # load_config() raises SystemExit on parse error or missing version field.
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Ledger ────────────────────────────────────────────────────────
    # RuntimeError on schema version mismatch propagates: startup refused.
    ledger = await create_ledger(config)
    app.state.ledger = ledger

    # ── Step 3: Notifier ──────────────────────────────────────────────────────
    notifier = create_notifier(config)
    app.state.notifier = notifier

    # ── Step 4: Authority ─────────────────────────────────────────────────────
    app.state.authority = CredentialAuthority(
        ledger=ledger,
        notifier=notifier,
        public_origin=config.site.public_origin_web,
    )

    # ── Step 5: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "Credential authority ready",
        host=config.server.host,
        port=config.server.port,
        ledger_backend=config.ledger.backend,
    )

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("Credential authority shutting down...")
    app.state.ready = False

    try:
        await notifier.close()
    except Exception as exc:
        logger.warning("Notifier close error (non-fatal)", error=str(exc))

    await ledger.close()
    logger.info("Credential authority shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the credential authority FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    Tests driving the app through httpx.ASGITransport (which does not run the
    lifespan) set app.state.authority / ledger / notifier / ready themselves.
    """
    application = FastAPI(
        title="Credential Authority",
        description="API keys, passwords and email verification for first-party apps",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    application.state.ready = False

    # Rate limiter: attached to app state as required by slowapi.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(AuthError, auth_error_handler)
    application.add_middleware(SlowAPIMiddleware)

    @application.middleware("http")
    async def request_id_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Bind a ULID request id to the log context for the whole request."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    application.include_router(health_router)
    application.include_router(public_router)
    application.include_router(internal_router)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────
#   uvicorn authority.main:app --host 127.0.0.1 --port 8079

app = create_app()
