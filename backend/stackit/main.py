"""
StackIt Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires settings, the Database service, the response cache
       and the WebSocket manager onto app.state, then middleware, exception
       handlers and routers.
Who:   uvicorn (`uvicorn stackit.main:app`) and the test suite, which calls
       create_app(database=...) with an in-memory SQLite database.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                     FastAPI App                          │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging →           │
    │              SecurityHeaders → GZip → CORS → Cache       │
    │                                                          │
    │  Routes: /api/auth  /api/questions  /api/answers         │
    │          /api/votes /api/tags  /api/notifications        │
    │          /health    /ws (WebSocket)                      │
    │                                                          │
    │  app.state: database, cache, realtime                    │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → production config check → wait for the database
    Shutdown: clear the response cache → dispose the connection pool
"""

import logging
import sys
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from stackit import __version__
from stackit.cache import ResponseCache
from stackit.config import Settings, settings
from stackit.database import Database
from stackit.exceptions import DatabaseError, RateLimitExceededError, StackItError, ValidationError
from stackit.middleware.cache import ResponseCacheMiddleware, default_cache_rules
from stackit.middleware.logging import RequestLoggingMiddleware
from stackit.middleware.rate_limit import RateLimitMiddleware, default_rules
from stackit.middleware.request_id import RequestIDMiddleware, request_id_var
from stackit.middleware.security_headers import SecurityHeadersMiddleware
from stackit.realtime import ConnectionManager
from stackit.routes import answers, auth, health, notifications, questions, realtime, tags, votes

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(config: Settings = settings) -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2025-01-15T12:00:00 [INFO] stackit.services.vote_service: Vote ...
    """
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-request noise; our own access log replaces uvicorn's
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings
    setup_logging(config)
    logger.info("=" * 60)
    logger.info("StackIt Backend %s starting up (%s)...", __version__, config.environment)

    # Refuses to start in production with a default secret
    config.validate_required_for_production()

    database: Database = app.state.database
    await database.connect(attempts=config.db_connect_attempts, max_wait=config.db_connect_max_wait)

    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("StackIt Backend shutting down...")
    app.state.cache.clear()
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if errors:
        body["errors"] = errors
    return body


def _field_path(loc: tuple) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI puts first
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the error envelope.

        StackItError subclasses   → their own status_code (400/401/403/404/409/429/500)
        RequestValidationError    → 400 with one entry per invalid field
        HTTPException (routing)   → its status (404 unknown path, 405, ...)
        SQLAlchemyError           → 500, logged with the statement context
        Exception                 → 500, traceback only in development
    """

    @app.exception_handler(StackItError)
    async def handle_stackit_error(request: Request, exc: StackItError):
        status = exc.status_code
        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", request_id_var.get(""), type(exc).__name__, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", request_id_var.get(""), type(exc).__name__, exc.message)

        errors = exc.errors if isinstance(exc, ValidationError) else None
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        message = exc.message if status < 500 else "An internal error occurred. Please try again later."
        return JSONResponse(status_code=status, content=error_body(message, errors), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"field": _field_path(tuple(err.get("loc", ()))), "message": err.get("msg", "Invalid value")}
            for err in exc.errors()
        ]
        logger.info("[%s] Request validation failed: %d error(s)", request_id_var.get(""), len(errors))
        return JSONResponse(status_code=400, content=error_body("Validation failed", errors))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.error("[%s] Database error: %s", request_id_var.get(""), exc, exc_info=True)
        wrapped = DatabaseError(context={"error": type(exc).__name__})
        return JSONResponse(status_code=wrapped.status_code, content=error_body(wrapped.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        errors = None
        if request.app.state.settings.is_development:
            errors = [
                {"field": None, "message": f"{type(exc).__name__}: {exc}"},
                {"field": "traceback", "message": "".join(traceback.format_exception(exc))},
            ]
        return JSONResponse(
            status_code=500,
            content=error_body("An unexpected error occurred. Please try again or contact support.", errors),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    database: Optional[Database] = None,
    cache: Optional[ResponseCache] = None,
    realtime_manager: Optional[ConnectionManager] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        database:         defaults to Database.from_settings(settings)
        cache:            defaults to a ResponseCache sized from settings
        realtime_manager: defaults to a fresh ConnectionManager
        app_settings:     defaults to the module-level `settings`
    """
    app = FastAPI(
        title="StackIt API",
        description="Question & answer platform: questions, answers, votes, tags and live notifications.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    config = app_settings or settings
    app.state.settings = config
    app.state.database = database or Database.from_settings(config)
    app.state.cache = cache or ResponseCache(
        max_entries=config.cache_max_entries,
        enabled=config.cache_enabled,
    )
    app.state.realtime = realtime_manager or ConnectionManager()

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RateLimit → RequestID → Logging → SecurityHeaders
    # → GZip → CORS → ResponseCache → route
    app.add_middleware(ResponseCacheMiddleware, rules=default_cache_rules(config))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Cache", "ETag", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SecurityHeadersMiddleware, hsts=config.is_production)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, rules=default_rules(config))

    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(questions.router)
    app.include_router(answers.router)
    app.include_router(votes.router)
    app.include_router(tags.router)
    app.include_router(notifications.router)
    app.include_router(health.router)
    app.include_router(realtime.router)

    return app


app = create_app()
