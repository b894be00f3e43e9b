# Hey future me - the catalog router is the only way to poke the mirror from outside:
#
# - GET  /catalog/status                -> last run, song count, checkpoint, worker state
# - POST /catalog/sync                  -> run a sync NOW (409 if one is in flight)
# - GET  /catalog/charts                -> most recently modified mirrored charts
# - GET  /catalog/charts/{group_id}     -> one song (404 if not mirrored)
# - GET  /catalog/charts/by-slug/{slug} -> lookup by the md5 at the end of a chart page slug
#
# Chart bodies use the catalog's own field names (groupId, modifiedTime, ...), the same
# shape the sync run produces. Domain errors become HTTP codes in api/exception_handlers.py.
"""Catalog mirror endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from chartmirror.api.dependencies import get_mirror_service, get_sync_worker
from chartmirror.application.services.chart_mirror_service import ChartMirrorService
from chartmirror.application.workers.catalog_sync_worker import CatalogSyncWorker
from chartmirror.domain.entities import to_iso8601

router = APIRouter(prefix="/catalog")


class CheckpointInfo(BaseModel):
    """Where an unfinished run will resume."""

    after_time: str = Field(description="modifiedAfter of the unfinished run")
    cursor: int = Field(description="Last chartId the unfinished run stored")


class CatalogStatus(BaseModel):
    """Mirror and worker state."""

    last_run: str | None = Field(description="Start time of the last completed run")
    total_songs: int = Field(description="Songs in the mirror after the last completed run")
    mirrored_songs: int = Field(description="Songs in the mirror right now")
    checkpoint: CheckpointInfo | None = Field(
        default=None, description="Set while a run is unfinished or after it failed"
    )
    last_error: str | None = Field(default=None, description="Error of the last failed run")
    worker: dict[str, Any] = Field(default_factory=dict, description="Sync worker status")


class SyncResult(BaseModel):
    """Summary of a finished sync run."""

    last_run: str
    total_songs: int = Field(description="Songs in the mirror after this run")
    run_songs: int = Field(description="Distinct songs this run saw")
    total_charts: int = Field(description="Valid chart records this run saw")
    pages: int
    cursor: int
    converged: bool = Field(
        default=True, description="False when the run stopped early and left a checkpoint"
    )


@router.get("/status", response_model=CatalogStatus)
async def get_catalog_status(
    service: ChartMirrorService = Depends(get_mirror_service),
    worker: CatalogSyncWorker = Depends(get_sync_worker),
) -> CatalogStatus:
    """Current state of the local mirror and the sync worker."""
    state = await service.get_state()
    checkpoint = None
    if state.checkpoint_after_time is not None and state.checkpoint_cursor is not None:
        checkpoint = CheckpointInfo(
            after_time=to_iso8601(state.checkpoint_after_time),
            cursor=state.checkpoint_cursor,
        )

    return CatalogStatus(
        last_run=to_iso8601(state.last_run) if state.last_run else None,
        total_songs=state.total_songs,
        mirrored_songs=await service.count_charts(),
        checkpoint=checkpoint,
        last_error=state.last_error,
        worker=worker.get_status(),
    )


@router.post("/sync", response_model=SyncResult)
async def trigger_catalog_sync(
    worker: CatalogSyncWorker = Depends(get_sync_worker),
) -> SyncResult:
    """Run an incremental sync now and wait for it to finish.

    Returns 409 while another run is in flight and 502 with the run's progress
    when the catalog fails mid-run.
    """
    snapshot = await worker.trigger()
    return SyncResult(
        last_run=to_iso8601(snapshot.metadata.last_run),
        total_songs=snapshot.total_songs,
        run_songs=len(snapshot.charts),
        total_charts=snapshot.total_charts,
        pages=snapshot.pages,
        cursor=snapshot.cursor,
        converged=snapshot.converged,
    )


@router.get("/charts")
async def list_charts(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: ChartMirrorService = Depends(get_mirror_service),
) -> list[dict[str, Any]]:
    """Most recently modified mirrored charts, newest first."""
    records = await service.list_recent(limit=limit, offset=offset)
    return [record.to_catalog_dict() for record in records]


@router.get("/charts/by-slug/{slug}")
async def get_chart_by_slug(
    slug: str,
    service: ChartMirrorService = Depends(get_mirror_service),
) -> dict[str, Any]:
    """Resolve a chart page slug (``...-<md5>``) to the mirrored chart."""
    record = await service.find_by_slug(slug)
    return record.to_catalog_dict()


@router.get("/charts/{group_id}")
async def get_chart(
    group_id: str,
    service: ChartMirrorService = Depends(get_mirror_service),
) -> dict[str, Any]:
    """One mirrored song by groupId."""
    record = await service.get_chart(group_id)
    return record.to_catalog_dict()
