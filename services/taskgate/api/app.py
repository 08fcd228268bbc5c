"""
FastAPI application factory for Taskgate API server.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskgate.config import settings
from taskgate.db.session import close_db, init_db
from taskgate.logging_config import configure_logging, get_logger
from taskgate.permissions.protocol import (
    ActorNotFoundError,
    GrantAuthorizationError,
    GrantHolderNotFoundError,
    InvalidGrantError,
    ResourceNotFoundError,
)

from .health import router as health_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    logger.info("Starting Taskgate API server", version="0.1.0")

    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down Taskgate API server")
    await close_db()


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Taskgate API",
        description="Taskgate - permission resolution for project management",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware
    if settings.cors.allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    # Permission errors
    @app.exception_handler(ResourceNotFoundError)
    @app.exception_handler(ActorNotFoundError)
    @app.exception_handler(GrantHolderNotFoundError)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(GrantAuthorizationError)
    async def grant_forbidden_handler(
        request: Request, exc: GrantAuthorizationError
    ) -> JSONResponse:
        logger.info("Grant change rejected", path=str(request.url.path), reason=str(exc))
        return _error(403, str(exc))

    @app.exception_handler(InvalidGrantError)
    async def invalid_grant_handler(request: Request, exc: InvalidGrantError) -> JSONResponse:
        return _error(422, str(exc))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return _error(500, "Internal server error")

    # Health endpoints (no prefix)
    app.include_router(health_router)

    # Resource hierarchy
    from taskgate.api.routers.resources import router as resources_router

    app.include_router(resources_router, prefix=settings.api_prefix)

    # Permission decisions and grant management
    from taskgate.api.routers.permissions import router as permissions_router

    app.include_router(permissions_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_application()
