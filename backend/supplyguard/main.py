"""
SupplyGuard Backend — FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes component wiring, middleware registration, route mounting
       and lifecycle management in one place.
How:   create_app() builds the stateful components (limiters, cache, audit
       logger, backup code manager), attaches them to app.state, and
       registers middleware and routes around them.
Who:   uvicorn (uvicorn supplyguard.main:app) and the test suite, which calls
       create_app() with a fake clock and an in-memory audit sink.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain (outer → inner):                           │
    │  RequestID → Logging → SecurityHeaders → RateLimit("api")    │
    │    → GZip → CORS → ResponseCache → AuditTrail                │
    │    → UnhandledError                                          │
    │                                                              │
    │  Routes:                                                     │
    │  GET /health │ GET /api/cache/stats │ DELETE /api/cache      │
    │                                                              │
    │  app.state:                                                  │
    │  settings, rate_limiters, response_cache, audit_logger,      │
    │  backup_codes, engine, monitors, started_at                  │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, periodic monitors
    Shutdown: stop monitors, drain pending audit writes, dispose engine
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from supplyguard import __version__
from supplyguard.config import Settings, settings
from supplyguard.database import async_session_factory, dispose_engine, engine
from supplyguard.exceptions import (
    DatabaseError,
    NotFoundError,
    RateLimitExceededError,
    SupplyGuardError,
)
from supplyguard.middleware.audit_trail import AuditTrailMiddleware
from supplyguard.middleware.errors import UnhandledErrorMiddleware, unexpected_error_response
from supplyguard.middleware.logging import RequestLoggingMiddleware
from supplyguard.middleware.rate_limit import RateLimitMiddleware
from supplyguard.middleware.request_id import RequestIDMiddleware, request_id_var
from supplyguard.middleware.response_cache import ResponseCacheMiddleware
from supplyguard.middleware.security_headers import SecurityHeadersMiddleware
from supplyguard.responses import error_response
from supplyguard.routes import cache, health
from supplyguard.services.audit_logger import AuditLogger
from supplyguard.services.audit_sink import AuditSink, DatabaseAuditSink
from supplyguard.services.backup_codes import BackupCodeManager
from supplyguard.services.monitors import (
    cache_sweeper,
    database_health_monitor,
    memory_monitor,
    stop_all,
)
from supplyguard.services.rate_limiter import RateLimiterRegistry
from supplyguard.services.response_cache import ResponseCache
from supplyguard.stores.base import Clock, SystemClock

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s

    Named channels worth filtering on:
        supplyguard.access    one line per request
        supplyguard.security  rate-limit denials and other security events
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        1. Setup logging
        2. Validate deployment settings (logged, never fatal: the gateway
           should still answer health checks with a bad config)
        3. Start the periodic monitors

    Shutdown:
        1. Stop monitors
        2. Drain fire-and-forget audit writes (bounded wait)
        3. Dispose the database engine
    """
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("SupplyGuard Backend %s starting up...", __version__)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    if app_settings.monitors_enabled:
        for task in app.state.monitors:
            task.start()
        logger.info("Started %d periodic monitors", len(app.state.monitors))

    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("SupplyGuard Backend shutting down...")
    await stop_all(app.state.monitors)
    await app.state.audit_logger.drain()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Render every handled failure as the standard error envelope.

    Handler hierarchy:
        RateLimitExceededError  → 429 + X-RateLimit-* / Retry-After headers
        DatabaseError           → 500, generic message
        SupplyGuardError (base) → exc.status_code with exc.code
        HTTPException           → 404 as NotFoundError, others with HTTP_ERROR
        Exception (fallback)    → 500 INTERNAL_SERVER_ERROR

    Route errors that escape all of these are caught earlier by
    UnhandledErrorMiddleware; the Exception handler here only sees failures
    raised by the middleware chain itself.

    Internal details (context, stack traces, SQL) are logged, never returned.
    """

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after)}
        if exc.decision is not None:
            headers.update(exc.decision.headers())
        return error_response(
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            retry_after=exc.retry_after,
            headers=headers,
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return error_response(
            status_code=exc.status_code,
            code=exc.code,
            message="An internal error occurred. Please try again later.",
        )

    @app.exception_handler(SupplyGuardError)
    async def handle_supplyguard_error(request: Request, exc: SupplyGuardError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.code, exc.message)
        return error_response(status_code=exc.status_code, code=exc.code, message=exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            not_found = NotFoundError(resource="endpoint")
            return error_response(
                status_code=not_found.status_code,
                code=not_found.code,
                message=not_found.message,
                headers=exc.headers,
            )
        return error_response(
            status_code=exc.status_code,
            code="HTTP_ERROR",
            message=str(exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return unexpected_error_response(request, exc)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    audit_sink: Optional[AuditSink] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Defaults to the module-level settings
        clock:        Time source shared by limiters and the cache
        audit_sink:   Defaults to the database sink

    Every call builds fresh components, so two apps never share counters or
    cached responses.
    """
    app_settings = app_settings or settings
    clock = clock or SystemClock()

    app = FastAPI(
        title="SupplyGuard API",
        description=(
            "Request protection layer for the SupplyGuard supply-chain platform: "
            "rate limiting, response caching, security headers and audit logging."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Components ────────────────────────────────────────────────────────
    rate_limiters = RateLimiterRegistry.from_profiles(app_settings.rate_limit_profiles, clock=clock)
    response_cache = ResponseCache(ttl_seconds=app_settings.cache_ttl, clock=clock)
    audit_logger = AuditLogger(audit_sink or DatabaseAuditSink(async_session_factory))

    app.state.settings = app_settings
    app.state.rate_limiters = rate_limiters
    app.state.response_cache = response_cache
    app.state.audit_logger = audit_logger
    app.state.backup_codes = BackupCodeManager(
        rounds=app_settings.backup_code_rounds,
        count=app_settings.backup_code_count,
    )
    app.state.engine = engine
    app.state.started_at = time.time()
    app.state.monitors = [
        cache_sweeper(response_cache, app_settings.cache_sweep_interval),
        memory_monitor(app_settings.memory_check_interval, app_settings.memory_warning_mb),
        database_health_monitor(
            engine,
            app_settings.db_health_interval,
            app_settings.slow_query_threshold_ms,
        ),
    ]

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first, so this list reads innermost → outermost.
    app.add_middleware(UnhandledErrorMiddleware)
    app.add_middleware(
        AuditTrailMiddleware,
        audit_logger=audit_logger,
        path_prefix=app_settings.cache_path_prefix,
    )
    app.add_middleware(
        ResponseCacheMiddleware,
        cache=response_cache,
        path_prefix=app_settings.cache_path_prefix,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Cache",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiters["api"])
    app.add_middleware(
        SecurityHeadersMiddleware,
        content_security_policy=app_settings.content_security_policy,
        hsts_max_age=app_settings.hsts_max_age,
    )
    app.add_middleware(
        RequestLoggingMiddleware,
        slow_request_threshold_ms=app_settings.slow_request_threshold_ms,
    )
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(cache.router)

    return app


# uvicorn expects `supplyguard.main:app` to be importable
app = create_app()
