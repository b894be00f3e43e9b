"""Worker system - background catalog synchronization."""

from chartmirror.application.workers.catalog_sync_worker import CatalogSyncWorker

__all__ = ["CatalogSyncWorker"]
