"""API router initialization."""

# Hey future me, api_router gets mounted at /api in main.py, so the catalog endpoints
# end up at /api/catalog/... The health router is NOT in here - probes live at /health
# outside the API prefix.

from fastapi import APIRouter

from chartmirror.api.routers import catalog, health

api_router = APIRouter()
api_router.include_router(catalog.router, tags=["Catalog"])

__all__ = ["api_router", "catalog", "health"]
