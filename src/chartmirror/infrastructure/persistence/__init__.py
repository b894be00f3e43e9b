"""Persistence layer for the local chart mirror."""

from chartmirror.infrastructure.persistence.database import Database
from chartmirror.infrastructure.persistence.repositories import (
    ChartRepository,
    SyncStateRepository,
)

__all__ = ["ChartRepository", "Database", "SyncStateRepository"]
