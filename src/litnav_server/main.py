"""
LitNav Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures logging and global exception handling, and provides a test-friendly
application factory.

The server is the long-lived background process behind the desktop client:
it owns the workspace session, runs preprocessing and exhaustive sweeps, and
pushes their progress over ``GET /events``.
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import settings
from .core.errors import LitNavError, litnav_error_handler, unhandled_exception_handler
from .sessions.workspace import WorkspaceRegistry

from .api import (
    events_routes,
    exhaustive_routes,
    health_routes,
    preprocess_routes,
    search_routes,
    workspace_routes,
)


logger = logging.getLogger("litnav.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(registry: Optional[WorkspaceRegistry] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    registry : Optional[WorkspaceRegistry]
        Pre-built registry, e.g. with stub embedder/LLM/extractor in tests.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting litnav-server")
        yield
        # Cancel active runs and release the in-memory index
        await app.state.registry.reset()
        logger.info("Shutting down litnav-server")

    app = FastAPI(
        title="litnav-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.registry = registry or WorkspaceRegistry()

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(LitNavError, litnav_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(workspace_routes.router)
    app.include_router(preprocess_routes.router)
    app.include_router(search_routes.router)
    app.include_router(exhaustive_routes.router)
    app.include_router(events_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
