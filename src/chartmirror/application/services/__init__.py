"""Application services - catalog crawl, dedup and the local mirror."""

from chartmirror.application.services.catalog_sync_service import (
    CatalogSyncEngine,
    PageCallback,
)
from chartmirror.application.services.chart_mirror_service import (
    ChartMirrorService,
    md5_from_slug,
)
from chartmirror.application.services.dedup_merger import DedupMerger, MergeOutcome
from chartmirror.application.services.record_normalizer import (
    extract_chart_id,
    normalize_record,
)

__all__ = [
    "CatalogSyncEngine",
    "ChartMirrorService",
    "DedupMerger",
    "MergeOutcome",
    "PageCallback",
    "extract_chart_id",
    "md5_from_slug",
    "normalize_record",
]
