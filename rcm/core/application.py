"""
Application factory and setup functions.

Builds the FastAPI application: lifespan (data store and cache handles),
middleware, error handlers and routes.

Collaborators can be injected (tests pass an in-memory `DataStore`); the
lifespan only creates, and later closes, the handles it owns.
"""
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from rcm.config.database import DataStore, init_data_store
from rcm.config.redis import close_redis_client
from rcm.config.settings import get_cors_origins, is_cache_enabled
from rcm.services.audit import AuditSink, default_audit_sink
from rcm.utils.cache import Cache
from rcm.utils.errors import (
    AppError,
    app_error_handler,
    general_exception_handler,
    validation_error_handler,
)
from rcm.utils.logger import get_logger

logger = get_logger(__name__)


def create_lifespan() -> Callable:
    """
    Create application lifespan context manager.

    Startup opens the data store (unless one was injected) and the stats
    cache. Shutdown closes whatever startup opened.
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting application...")
        owns_store = app.state.data_store is None
        if owns_store:
            app.state.data_store = init_data_store()
        owns_cache = app.state.cache is None and is_cache_enabled()
        if owns_cache:
            app.state.cache = Cache(namespace="rcm")
        logger.info("Application started successfully")
        yield
        logger.info("Shutting down application...")
        if owns_cache:
            app.state.cache = None
            close_redis_client()
        if owns_store:
            app.state.data_store.close()
            app.state.data_store = None

    return lifespan


def setup_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Operator-Id"],
    )
    logger.info("Middleware configured successfully")


def setup_error_handlers(app: FastAPI) -> None:
    """
    Register all application error handlers.

    Order of specificity: AppError, request validation, catch-all.
    """
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Error handlers registered successfully")


def register_routes(app: FastAPI) -> None:
    """Register API routers under /api/v1."""
    from rcm.api.routes import claims, eras, health

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(eras.router, prefix="/api/v1", tags=["eras"])
    app.include_router(claims.router, prefix="/api/v1", tags=["claims"])

    logger.info("Routes registered successfully")


def create_application(
    data_store: Optional[DataStore] = None,
    cache: Optional[Cache] = None,
    audit_sink: Optional[AuditSink] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        data_store: Pre-built data store (otherwise opened on startup)
        cache: Pre-built stats cache (otherwise created on startup when enabled)
        audit_sink: Audit event sink (defaults to structured logging)
    """
    app = FastAPI(
        title="RCM Payment Posting",
        description="Payment posting and ERA reconciliation for healthcare revenue cycle management",
        version="1.0.0",
        lifespan=create_lifespan(),
    )
    app.state.data_store = data_store
    app.state.cache = cache
    app.state.audit_sink = audit_sink or default_audit_sink

    setup_middleware(app)
    setup_error_handlers(app)
    register_routes(app)

    return app
