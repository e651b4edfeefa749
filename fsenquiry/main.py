"""FastAPI application factory + lifespan lifecycle for the enquiry gateway.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to fsenquiry/health.py
  - /        route  — service discovery root
  - exception handlers — every error renders as ``{"error": "<message>"}``
  - app = create_app() — module-level instance for uvicorn

Factory (create_app):
  load_config()               → app.state.config (also sizes CORS)

Startup sequence:
  1. app.state.config         → loaded once by the factory
  2. RateLimiter(config)      → app.state.rate_limiter (in-memory counters)
  3. create_http_client()     → app.state.http_client
  4. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → close http client → reset rate-limit counters
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from starlette.exceptions import HTTPException as StarletteHTTPException

from fsenquiry import __version__
from fsenquiry.config import Config, load_config
from fsenquiry.errors import GatewayError
from fsenquiry.health import router as health_router
from fsenquiry.proxy.engine import (
    create_http_client,
    router as engine_router,
    shutdown_proxy_engine,
)
from fsenquiry.proxy.middleware import BodySizeLimitMiddleware
from fsenquiry.ratelimit import RateLimiter
from fsenquiry.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


root_router = APIRouter(tags=["root"])


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="Service starting")


# ─── Root Endpoint ────────────────────────────────────────────────────────────


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "fsenquiry",
        "description": "SAPS firearm status enquiry gateway",
        "enquiry": "POST /api/firearm-status",
        "health": "/health",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("Gateway starting up...")

    config: Config = app.state.config

    rate_limiter = RateLimiter(config.rate_limit)
    app.state.rate_limiter = rate_limiter
    logger.info(
        "Rate limiter initialised",
        max_requests=config.rate_limit.max_requests,
        window_s=config.rate_limit.window_s,
        daily_max=config.rate_limit.daily_max,
    )

    http_client: httpx.AsyncClient = create_http_client(config.upstream.timeout_s)
    app.state.http_client = http_client
    logger.info("HTTP upstream client created", timeout_s=config.upstream.timeout_s)

    app.state.ready = True
    logger.info("Gateway ready", upstream_url=config.upstream.url)

    yield

    logger.info("Gateway shutting down...")
    app.state.ready = False

    try:
        await shutdown_proxy_engine(http_client)
    except Exception as exc:
        logger.warning("HTTP upstream client close error (non-fatal)", error=str(exc))

    await rate_limiter.reset()
    logger.info("Gateway shutdown complete")


# ─── Error rendering ──────────────────────────────────────────────────────────


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Every error leaves the gateway as ``{"error": message}``."""
    response_headers = dict(headers or {})
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response_headers["X-Request-ID"] = request_id
    return JSONResponse(status_code=status_code, content={"error": message}, headers=response_headers)


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Enquiry failed",
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        reason=exc.reason,
        path=request.url.path,
    )
    return _error_response(request, exc.status_code, exc.public_message, exc.headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routing 404/405 and require_ready's 503 land here.
    logger.warning(
        "Request rejected",
        status_code=exc.status_code,
        detail=exc.detail,
        method=request.method,
        path=request.url.path,
    )
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return _error_response(request, exc.status_code, message, getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return _error_response(request, 500, "Internal server error")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the gateway FastAPI application.

    Call directly in tests to get an isolated app instance:
        app = create_app()

    CORS is restricted to ``proxy.allowed_origin``, which is read from the
    config at factory time (the origin must be known before the middleware
    stack is built).
    """
    # load_config() raises SystemExit on an invalid config, before any route exists.
    config = load_config()

    application = FastAPI(
        title="Firearm Status Enquiry Gateway",
        description="Relays SAPS firearm status enquiries from the browser to the upstream form",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if DEBUG else None,
    )
    application.state.config = config
    application.state.ready = False

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[config.proxy.allowed_origin],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=["Retry-After", "X-Request-ID"],
    )
    # Added last, so outermost: oversized bodies never reach CORS or routing.
    application.add_middleware(BodySizeLimitMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(engine_router, dependencies=[Depends(require_ready)])

    application.add_exception_handler(GatewayError, gateway_error_handler)
    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
