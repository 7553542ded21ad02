"""FileNest API service.

FastAPI application providing:
- File request creation behind the monthly quota
- Public request lookup and upload admission for the upload page
- Operator endpoints for integrity repair and one-off passes

This module provides the app factory used by tests and by the ASGI entry
point in ``filenest.api.main``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filenest.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from filenest.api.routers import admin_router, requests_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from filenest.core.config import Settings

logger = logging.getLogger(__name__)

API_TITLE = "FileNest API"
API_DESCRIPTION = """
File request service API.

## Namespaces

- **/requests/** - Create file requests and check uploads
- **/admin/** - Integrity repair and one-off passes (X-API-Key)
"""


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    from filenest.db import close_engine

    await close_engine()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. When omitted, routes load the
            process-wide settings on first use.

    Returns:
        Configured FastAPI application.

    Example:
        app = create_app()

        # For testing
        app = create_app(Settings(database={"url": "postgresql://u:p@h/db"}))
    """
    version = settings.app_version if settings else "0.1.0"

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=_lifespan,
    )

    app.state.settings = settings

    _add_middleware(app, settings)

    app.include_router(requests_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration."""
        return {"status": "healthy"}

    logger.info("FileNest API application created (version=%s)", version)

    return app


def _add_middleware(app: FastAPI, settings: Settings | None) -> None:
    """Add middleware; the last one added is outermost."""
    app.add_middleware(ErrorHandlerMiddleware)

    # Outside the error handler so error bodies carry the request ID
    app.add_middleware(RequestIDMiddleware)

    allowed_origins = [settings.frontend_url] if settings else ["http://localhost:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
