"""taskvault FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from taskvault import config
from taskvault.config import MarkdownExportConfig
from taskvault.db import connection, sqlite_migrations
from taskvault.db.factory import build_repository_provider
from taskvault.observability import initialize as initialize_observability, shutdown as shutdown_observability
from taskvault.routers.vault import vault_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("taskvault")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("taskvault starting up")
    initialize_observability(app)

    # 1. Initialize DB connection
    db = await connection.get_connection()

    # 2. Run migrations
    await sqlite_migrations.run_migrations(db)

    # 3. Repositories, wrapped for markdown mirroring when enabled
    export_config = MarkdownExportConfig.from_env(config.DB_PATH)
    provider, export_service, scope = build_repository_provider(db, export_config)
    app.state.repositories = provider
    app.state.export_service = export_service
    app.state.export_scope = scope

    # 4. Optional vault rebuild, in the background so startup is not blocked
    if export_service and scope and export_config.rebuild_on_startup:
        logger.info("Rebuilding markdown vault on startup")
        scope.launch(export_service.full_export(), "startup-rebuild")

    yield

    logger.info("taskvault shutting down")

    # Pending exports still read from the database, so drain before closing it.
    if scope is not None:
        await scope.drain(export_config.drain_timeout_seconds)

    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="taskvault API",
    description="Task tracker store with a live markdown vault mirror",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(vault_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
        "export": "enabled" if getattr(app.state, "export_service", None) else "disabled",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("taskvault.main:app", host=config.HOST, port=config.PORT)
