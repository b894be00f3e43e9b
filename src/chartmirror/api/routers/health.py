# Hey future me - Docker HEALTHCHECK target:
#   curl -f http://localhost:8000/health/live || exit 1
# /live only says the process answers. /ready also checks the DB and that the
# sync worker loop is up (when sync is enabled).
"""Health check endpoints for container probes."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text

from chartmirror.domain.entities import utc_now

router = APIRouter()


class LivenessStatus(BaseModel):
    """Simple liveness probe response."""

    status: str = Field(description="alive")
    timestamp: str = Field(description="ISO timestamp")


class ReadinessStatus(BaseModel):
    """Readiness probe response."""

    status: str = Field(description="ready or not_ready")
    timestamp: str = Field(description="ISO timestamp")
    database: bool = Field(description="Database connection OK")
    sync_worker: bool = Field(description="Sync worker running (or sync disabled)")


@router.get("/live", response_model=LivenessStatus)
async def liveness_probe() -> LivenessStatus:
    """Returns 200 as long as the process serves requests. No dependency checks."""
    return LivenessStatus(status="alive", timestamp=utc_now().isoformat())


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_probe(request: Request) -> JSONResponse:
    """Returns 200 when the mirror can serve traffic, 503 otherwise."""
    db_ok = False
    db = getattr(request.app.state, "db", None)
    if db is not None:
        try:
            async with db.session_scope() as session:
                await session.execute(text("SELECT 1"))
            db_ok = True
        except Exception:
            db_ok = False

    worker = getattr(request.app.state, "sync_worker", None)
    sync_enabled = getattr(request.app.state, "sync_enabled", False)
    worker_ok = not sync_enabled or (
        worker is not None and worker.get_status()["running"]
    )

    is_ready = db_ok and worker_ok
    response = ReadinessStatus(
        status="ready" if is_ready else "not_ready",
        timestamp=utc_now().isoformat(),
        database=db_ok,
        sync_worker=worker_ok,
    )
    status_code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(), status_code=status_code)
