"""API module for ChartMirror.

The entry point is `api_router` from routers/, mounted under /api in main.py.

Structure:
- routers/: catalog and health endpoints
- dependencies.py: lookups of the objects the lifespan puts on app.state
- exception_handlers.py: domain exception -> HTTP status mapping
"""

from chartmirror.api.exception_handlers import register_exception_handlers
from chartmirror.api.routers import api_router

__all__ = ["api_router", "register_exception_handlers"]
