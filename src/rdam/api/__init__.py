"""RDAM API service.

FastAPI application providing:
- Citizen request submission, email verification, status and payment
- PlusPagos payment webhook
- Certificate download by token
- Internal operator endpoints (listing, certificate upload, token regeneration)

This module provides the app factory pattern for creating configured
FastAPI instances suitable for testing and production deployment.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rdam.api.middleware import (
    ErrorHandlerMiddleware,
    RequestIDMiddleware,
    register_error_handlers,
)
from rdam.api.routers import (
    auth_router,
    certificados_router,
    interno_router,
    operadores_router,
    solicitudes_router,
    webhooks_router,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from rdam.core.config import Settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Seconds to wait for in-flight notifications on shutdown
SHUTDOWN_DRAIN_TIMEOUT = 10.0

API_TITLE = "RDAM API"
API_DESCRIPTION = """
Registro de Deudores Alimentarios Morosos: certificate requests.

## Namespaces

- **/api/v1/solicitudes** - Citizen requests (public, then citizen token)
- **/api/v1/webhooks** - Payment gateway notifications (HMAC-signed)
- **/api/v1/certificados** - Certificate download (download token)
- **/api/v1/interno** - Operator endpoints (operator bearer token)

## Documentation

- OpenAPI spec: `/api/openapi.json`
- Swagger UI: `/api/docs`
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Release the process-wide clients created by the dependencies."""
    yield

    notifier = getattr(app.state, "notifier", None)
    if notifier is not None and notifier.pending:
        logger.info("Waiting for %d notifications", notifier.pending)
        await notifier.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)

    client = getattr(app.state, "redis", None)
    if client is not None:
        await client.aclose()

    from rdam.db import close_engine

    await close_engine()
    logger.info("RDAM API shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. If not provided, settings are
            loaded from the environment on first use.

    Returns:
        Configured FastAPI application ready to serve requests.

    Example:
        app = create_app()

        # For testing
        app = create_app(Settings(environment="test"))
        app.dependency_overrides[get_coordinator] = lambda: coordinator
    """
    version = settings.app_version if settings else "0.1.0"

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # Read by rdam.api.dependencies.get_app_settings
    app.state.settings = settings

    register_error_handlers(app)
    _add_middleware(app, settings)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    @app.get(f"{API_PREFIX}/health", tags=["health"], include_in_schema=False)
    async def health_check() -> dict[str, str]:
        """Liveness check for container orchestration."""
        return {"status": "healthy"}

    logger.info("RDAM API application created (version=%s)", version)

    return app


def _add_middleware(app: FastAPI, settings: Settings | None) -> None:
    """Add middleware to the application.

    The last middleware added is the outermost: request IDs are assigned
    before the error handler runs, so every error response carries one.
    """
    app.add_middleware(ErrorHandlerMiddleware, debug=bool(settings and settings.debug))

    allowed_origins = list(settings.cors_origins) if settings else []
    if settings and settings.is_development and not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://localhost:8000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.add_middleware(RequestIDMiddleware)


def _include_routers(app: FastAPI) -> None:
    app.include_router(solicitudes_router, prefix=API_PREFIX)
    app.include_router(webhooks_router, prefix=API_PREFIX)
    app.include_router(certificados_router, prefix=API_PREFIX)
    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(interno_router, prefix=API_PREFIX)
    app.include_router(operadores_router, prefix=API_PREFIX)
