"""ChartMirror FastAPI application.

Run with:
    uvicorn chartmirror.main:app --host 0.0.0.0 --port 8000
"""

from fastapi import FastAPI

from chartmirror.api import api_router, register_exception_handlers
from chartmirror.api.routers import health
from chartmirror.config import Settings
from chartmirror.infrastructure.lifecycle import lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Optional settings; the lifespan falls back to get_settings()

    Returns:
        Configured FastAPI app (resources are created when the lifespan starts)
    """
    app = FastAPI(
        title="ChartMirror",
        description="Incremental local mirror of the community chart catalog",
        version="1.0.0",
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings

    register_exception_handlers(app)
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
