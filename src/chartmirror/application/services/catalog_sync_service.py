# Hey future me - this is THE incremental catalog crawl!
#
# The catalog API pages by chartId ("give me charts with chartId > cursor"),
# but what we care about is SONGS (groupId). One song can have many charts.
# So the loop is:
#
#   1. fetch page (modifiedAfter=after_time, chartIdAfter=cursor)
#   2. normalize + merge every record, track the max chartId of the page
#   3. cursor = max(cursor, page max)          <- never goes backwards
#   4. on_page(records, cursor)                <- caller checkpoints here
#   5. stop when the page brought ZERO new groupIds
#
# Step 5 is about novelty, not emptiness: a page full of alternate charts for
# songs we already have counts as "nothing new". An empty page is also zero
# new songs, so a drained catalog stops the loop too.
#
# Pages are strictly sequential. Each request needs the cursor from the
# previous page.
"""Incremental chart-catalog synchronization engine."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from chartmirror.application.services.dedup_merger import DedupMerger, MergeOutcome
from chartmirror.application.services.record_normalizer import (
    extract_chart_id,
    normalize_record,
)
from chartmirror.domain.entities import (
    NormalizedRecord,
    SyncMetadata,
    SyncProgress,
    SyncSnapshot,
    ensure_utc_aware,
    to_iso8601,
    utc_now,
)
from chartmirror.domain.exceptions import (
    FatalFetchError,
    MalformedRecordError,
    SyncCancelledError,
    SyncRunFailedError,
)
from chartmirror.domain.ports import ICatalogClient
from chartmirror.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

# (records of this page, cursor after this page) -> None or awaitable
PageCallback = Callable[[list[NormalizedRecord], int], Awaitable[None] | None]


class CatalogSyncEngine:
    """Drives one paginated crawl of the remote catalog to convergence.

    The engine owns no storage. Everything it learns goes out through the
    on_page callback (per page) and the returned SyncSnapshot (at the end).
    """

    def __init__(
        self,
        client: ICatalogClient,
        max_iterations: int | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Catalog client (handles 429 retries internally)
            max_iterations: Development safety valve. When reached the run
                returns what it has with converged=False. Leave None for full runs.
        """
        self._client = client
        self._max_iterations = max_iterations

    async def run(
        self,
        after_time: datetime,
        on_page: PageCallback,
        *,
        start_cursor: int = 0,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncSnapshot:
        """Crawl the catalog until a page contributes no new songs.

        Args:
            after_time: Only records modified at or after this instant
            on_page: Called once per fetched page with (normalized records, cursor)
            start_cursor: chartId to resume after (0 = from the beginning)
            cancel_event: Checked before every page; set it to abort between pages

        Returns:
            Deduplicated snapshot with run metadata

        Raises:
            SyncRunFailedError: A page fetch failed fatally (progress attached)
            SyncCancelledError: cancel_event was set (progress attached)
        """
        after_time = ensure_utc_aware(after_time)
        run_started_at = utc_now()
        started = time.monotonic()
        after_iso = to_iso8601(after_time)

        merger = DedupMerger()
        cursor = start_cursor
        pages = 0
        total_charts = 0
        converged = True

        def progress() -> SyncProgress:
            return SyncProgress(
                cursor=cursor,
                pages_completed=pages,
                songs_seen=len(merger),
                charts_seen=total_charts,
                started_at=run_started_at,
            )

        logger.info(LogMessages.sync_started(after_time=after_iso, cursor=cursor))

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(LogMessages.sync_cancelled(cursor=cursor, pages=pages))
                raise SyncCancelledError(
                    f"Catalog sync cancelled at cursor {cursor}", progress()
                )

            if self._max_iterations is not None and pages >= self._max_iterations:
                logger.warning(
                    "catalog_sync.max_iterations_reached",
                    extra={"max_iterations": self._max_iterations, "cursor": cursor},
                )
                converged = False
                break

            try:
                raw_page = await self._client.fetch_page(after_time, cursor)
            except FatalFetchError as e:
                logger.error(
                    LogMessages.sync_failed(error=str(e), cursor=cursor, pages=pages)
                )
                raise SyncRunFailedError(
                    f"Catalog sync aborted at cursor {cursor}: {e}", progress()
                ) from e

            cursor_before = cursor
            page_max_chart_id = cursor
            page_records: list[NormalizedRecord] = []
            new_songs = 0

            for raw in raw_page:
                chart_id = extract_chart_id(raw) if isinstance(raw, dict) else None
                if chart_id is not None and chart_id > page_max_chart_id:
                    page_max_chart_id = chart_id

                try:
                    record = normalize_record(raw)
                except MalformedRecordError as e:
                    logger.warning(
                        LogMessages.malformed_record(chart_id=e.chart_id, fields=e.fields)
                    )
                    continue

                total_charts += 1
                page_records.append(record)
                if merger.observe(record) is MergeOutcome.INSERTED:
                    new_songs += 1

            cursor = max(cursor, page_max_chart_id)
            pages += 1

            logger.info(
                LogMessages.sync_page(
                    after_time=after_iso,
                    cursor_before=cursor_before,
                    cursor_after=cursor,
                    new_songs=new_songs,
                    total_songs=len(merger),
                    total_charts=total_charts,
                )
            )

            result = on_page(page_records, cursor)
            if inspect.isawaitable(result):
                await result

            if new_songs == 0:
                if raw_page:
                    # Non-empty page without a single new song. Either the catalog is
                    # drained or we hit a long run of duplicate-only charts.
                    logger.info(
                        "catalog_sync.converged_on_duplicates",
                        extra={"cursor": cursor, "page_size": len(raw_page)},
                    )
                break

        snapshot = SyncSnapshot(
            charts=merger.snapshot(),
            metadata=SyncMetadata(last_run=run_started_at, total_songs=len(merger)),
            cursor=cursor,
            pages=pages,
            total_charts=total_charts,
            converged=converged,
        )

        logger.info(
            LogMessages.sync_completed(
                total_songs=snapshot.total_songs,
                total_charts=total_charts,
                pages=pages,
                cursor=cursor,
                duration_seconds=time.monotonic() - started,
            )
        )
        return snapshot
