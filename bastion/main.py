"""
Bastion decision API.

FastAPI application exposing the security engine to host applications,
with structured logging, error handling and an optional audit trail.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bastion import __version__
from bastion.api import admin_router, guard_router, health_router
from bastion.config import Settings, get_settings
from bastion.core import (
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from bastion.db import (
    dispose_engine,
    get_engine,
    get_session_factory,
    init_db,
    install_audit_handler,
    remove_audit_handler,
    reset_session_factory,
)
from bastion.engine import SecurityEngine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = _app.state.settings

    # Startup
    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting Bastion",
        data={
            "host": settings.host,
            "port": settings.port,
            "store": settings.store_backend,
            "audit": settings.audit_log_enabled,
        },
    )

    handler = None
    if settings.audit_log_enabled:
        get_engine(settings)
        init_db()
        _app.state.audit_sessions = get_session_factory()
        handler = install_audit_handler(_app.state.audit_sessions)
        logger.info("Audit trail enabled")

    if settings.emergency_disable:
        logger.warning("Emergency override active - Under Attack mode forced off")
    if settings.is_production and not settings.ip_key_secret:
        logger.warning("IP_KEY_SECRET not set - IP keys are unkeyed hashes")
    if not settings.guard_api_token:
        logger.warning("GUARD_API_TOKEN not set - /guard routes will refuse every call")

    yield

    # Shutdown
    logger.info("Shutting down Bastion")
    if handler is not None:
        remove_audit_handler(handler)
        _app.state.audit_sessions = None
        reset_session_factory()
        dispose_engine()
    _app.state.engine.close()


def create_app(settings: Settings | None = None, engine: SecurityEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Bastion",
        description="Adaptive security decision engine",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.engine = engine or SecurityEngine(settings)
    app.state.audit_sessions = None

    # Setup exception handlers (must be before middleware)
    setup_exception_handlers(app)

    # Add middleware (order matters - last added = first executed)
    # 1. Request size limit (reject oversized requests early)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)

    # 2. Request context (inject request ID, log requests)
    app.add_middleware(RequestContextMiddleware)

    # Register routers
    app.include_router(health_router)
    app.include_router(guard_router)
    app.include_router(admin_router)

    return app


# Create application instance
app = create_app()
