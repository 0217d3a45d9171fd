"""FastAPI application entry point for AetherLock.

Lifecycle:
    1. Startup: Initialize logging, create tables (dev/SQLite), connect Redis.
    2. Running: Serve REST API, the realtime socket and MCP tools on a
       single Uvicorn process.
    3. Shutdown: Close database, Redis and pinning connections gracefully.

The MCP server is mounted at /mcp so AI agents can discover tools
alongside the REST API at /api/v1/*.

Run with:
    uv run uvicorn aetherlock.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from aetherlock.api.middleware import setup_middleware
from aetherlock.api.routes.chat import router as chat_router
from aetherlock.api.routes.escrow import router as escrow_router
from aetherlock.api.routes.health import router as health_router
from aetherlock.api.routes.realtime import router as realtime_router
from aetherlock.bootstrap import Container, build_container
from aetherlock.config import Settings, get_settings
from aetherlock.logging_config import get_logger, setup_logging
from aetherlock.mcp_server.tools import build_mcp_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    container: Container = app.state.container
    settings = container.settings

    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    await container.start()
    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await container.close()
    logger.info("app.stopped")


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    if container is not None:
        settings = container.settings
    settings = settings or get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    container = container or build_container(settings)

    app = FastAPI(
        title="AetherLock",
        description=(
            "Escrow coordination core: lifecycle state machine, AI verification "
            "and realtime party coordination."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.container = container

    # --- Middleware ---
    setup_middleware(app, settings)

    # --- REST API + realtime routes ---
    app.include_router(health_router)
    app.include_router(escrow_router)
    app.include_router(chat_router)
    app.include_router(realtime_router)

    # --- MCP Server (mounted as sub-application) ---
    if settings.mcp_enabled:
        mcp = build_mcp_server(container)
        app.mount("/mcp", mcp.sse_app())

    return app


# The app instance used by Uvicorn
app = create_app()
