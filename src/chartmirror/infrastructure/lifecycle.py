"""Application lifecycle management for startup and shutdown tasks.

This module holds the FastAPI lifespan context manager. Startup order:
logging -> database (tables) -> catalog client -> mirror service -> sync worker.
Shutdown runs the other way round.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from chartmirror.application.services.chart_mirror_service import ChartMirrorService
from chartmirror.application.workers.catalog_sync_worker import CatalogSyncWorker
from chartmirror.config import Settings, get_settings
from chartmirror.domain.exceptions import ConfigurationError
from chartmirror.infrastructure.integrations import EncoreCatalogClient
from chartmirror.infrastructure.observability import configure_logging
from chartmirror.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, SQLite creates the .db file itself but NOT its parent directory. A
# missing /data mount would otherwise surface as a cryptic "unable to open database
# file" on the first query. Only file-backed SQLite URLs are touched.
def _ensure_sqlite_directory(settings: Settings) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    try:
        url = make_url(settings.database.url)
    except ArgumentError as exc:
        raise ConfigurationError(
            f"Invalid database URL '{settings.database.url}': {exc}"
        ) from exc

    if not url.drivername.startswith("sqlite") or not url.database:
        return
    if url.database == ":memory:":
        return

    parent = Path(url.database).parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{parent}': {exc}. "
            "Update CHARTMIRROR_DATABASE__URL or adjust directory permissions."
        ) from exc


# Listen future me, everything before `yield` runs at STARTUP, everything after at
# SHUTDOWN. The finally block runs even if startup crashed halfway, so every
# resource is checked for None before closing. Routes reach the objects through
# app.state (see api/dependencies.py).
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles:
    - Logging configuration
    - Database initialization (tables are created if missing)
    - Catalog client, mirror service and sync worker wiring
    - Sync worker start/stop
    - Resource cleanup
    """
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db: Database | None = None
    client: EncoreCatalogClient | None = None
    worker: CatalogSyncWorker | None = None
    try:
        _ensure_sqlite_directory(settings)

        db = Database(settings)
        app.state.db = db
        await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url)

        client = EncoreCatalogClient(settings.catalog)
        service = ChartMirrorService(
            db, client, max_iterations=settings.sync.max_iterations
        )
        app.state.mirror_service = service

        worker = CatalogSyncWorker(
            service,
            interval_seconds=settings.sync.interval_seconds,
            run_on_startup=settings.sync.run_on_startup,
        )
        app.state.sync_worker = worker
        app.state.sync_enabled = settings.sync.enabled

        if settings.sync.enabled:
            await worker.start()
        else:
            logger.info("Periodic catalog sync disabled (manual trigger still works)")

        yield

    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        if worker is not None:
            try:
                await worker.stop()
            except Exception as e:
                logger.exception("Error stopping catalog sync worker: %s", e)

        if client is not None:
            try:
                await client.close()
            except Exception as e:
                logger.exception("Error closing catalog client: %s", e)

        if db is not None:
            try:
                await db.close()
                logger.info("Database connection closed")
            except Exception as e:
                logger.exception("Error closing database: %s", e)
