"""Dependency injection for API endpoints."""

from typing import cast

from fastapi import HTTPException, Request

from chartmirror.application.services.chart_mirror_service import ChartMirrorService
from chartmirror.application.workers.catalog_sync_worker import CatalogSyncWorker


# Hey future me - both objects are built ONCE in the lifespan (infrastructure/lifecycle.py)
# and hung on app.state. Missing means startup didn't finish - answer 503 instead of
# crashing with AttributeError.
def get_mirror_service(request: Request) -> ChartMirrorService:
    """Get the chart mirror service from app state.

    Raises:
        HTTPException: 503 if the service is not initialized
    """
    service = getattr(request.app.state, "mirror_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Chart mirror not initialized")
    return cast(ChartMirrorService, service)


def get_sync_worker(request: Request) -> CatalogSyncWorker:
    """Get the catalog sync worker from app state.

    Raises:
        HTTPException: 503 if the worker is not initialized
    """
    worker = getattr(request.app.state, "sync_worker", None)
    if worker is None:
        raise HTTPException(status_code=503, detail="Catalog sync worker not initialized")
    return cast(CatalogSyncWorker, worker)
