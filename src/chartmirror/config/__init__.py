"""Configuration module for ChartMirror."""

from .settings import (
    CatalogSettings,
    DatabaseSettings,
    ObservabilitySettings,
    Settings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "CatalogSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "Settings",
    "SyncSettings",
    "get_settings",
]
