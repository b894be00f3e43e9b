# Hey future me - this is the glue between the crawl engine and the local DB!
#
# The engine knows nothing about storage; this service gives it a window to
# crawl and a page callback that writes. Every page is ONE transaction:
# upsert the page's records + move the checkpoint. So after a crash the DB
# always holds "everything up to cursor X", and the next sync resumes there
# instead of starting the window over.
#
# Window choice:
#   - unfinished run in DB  -> its after_time + cursor (resume)
#   - finished run in DB    -> after_time = last_run, cursor 0
#   - never ran             -> after_time = epoch, cursor 0
"""Keeps the local chart mirror in sync with the remote catalog."""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime

from chartmirror.application.services.catalog_sync_service import CatalogSyncEngine
from chartmirror.domain.entities import (
    UNIX_EPOCH,
    GroupId,
    MirrorState,
    NormalizedRecord,
    SyncSnapshot,
    to_iso8601,
    utc_now,
)
from chartmirror.domain.exceptions import EntityNotFoundException, ValidationError
from chartmirror.domain.ports import ICatalogClient
from chartmirror.infrastructure.observability.logging import set_correlation_id
from chartmirror.infrastructure.persistence import (
    ChartRepository,
    Database,
    SyncStateRepository,
)

logger = logging.getLogger(__name__)

_MD5_LENGTH = 32


def md5_from_slug(slug: str) -> str | None:
    """Pull the chart md5 out of a chart page slug.

    Slugs look like ``artist-song-name-<md5>``; the md5 is the last
    dash-separated segment. Anything whose last segment isn't exactly
    32 characters has no md5.
    """
    last = slug.rsplit("-", 1)[-1]
    if len(last) != _MD5_LENGTH:
        return None
    return last


class ChartMirrorService:
    """Runs incremental syncs into the database and answers lookups."""

    def __init__(
        self,
        db: Database,
        client: ICatalogClient,
        max_iterations: int | None = None,
    ) -> None:
        self.db = db
        self._engine = CatalogSyncEngine(client, max_iterations=max_iterations)

    async def sync(self, cancel_event: asyncio.Event | None = None) -> SyncSnapshot:
        """Run one incremental sync against the local mirror.

        Args:
            cancel_event: Set it to stop the run between pages

        Returns:
            Snapshot of what this run saw. Its metadata.total_songs is the
            mirror's song count after the run, not just this run's. When
            converged is False the checkpoint was kept for the next sync.

        Raises:
            SyncRunFailedError: A page fetch failed; the checkpoint is kept
            SyncCancelledError: cancel_event was set; the checkpoint is kept
        """
        set_correlation_id()

        async with self.db.session_scope() as session:
            state = await SyncStateRepository(session).get()

        if state.checkpoint_after_time is not None and state.checkpoint_cursor is not None:
            resumed = True
            after_time = state.checkpoint_after_time
            start_cursor = state.checkpoint_cursor
            run_started_at = state.checkpoint_started_at or utc_now()
            logger.info(
                "catalog_mirror.resuming",
                extra={"after_time": to_iso8601(after_time), "cursor": start_cursor},
            )
        else:
            resumed = False
            after_time = state.last_run or UNIX_EPOCH
            start_cursor = 0
            run_started_at = utc_now()

        async def store_page(records: list[NormalizedRecord], cursor: int) -> None:
            async with self.db.session_scope() as session:
                await ChartRepository(session).upsert_many(records)
                await SyncStateRepository(session).save_checkpoint(
                    after_time, cursor, run_started_at
                )

        try:
            snapshot = await self._engine.run(
                after_time,
                store_page,
                start_cursor=start_cursor,
                cancel_event=cancel_event,
            )
        except Exception as e:
            await self._record_failure(e)
            raise

        if not snapshot.converged:
            return await self._keep_checkpoint(snapshot, after_time, run_started_at)

        # A resumed run keeps the ORIGINAL start time as its lastRun, otherwise
        # anything modified between the first attempt and the resume is skipped
        # by the next window.
        last_run = run_started_at if resumed else snapshot.metadata.last_run

        async with self.db.session_scope() as session:
            total_songs = await ChartRepository(session).count()
            await SyncStateRepository(session).complete_run(last_run, total_songs)

        logger.info(
            "catalog_mirror.synced",
            extra={
                "last_run": to_iso8601(last_run),
                "total_songs": total_songs,
                "run_songs": snapshot.total_songs,
                "cursor": snapshot.cursor,
                "resumed": resumed,
            },
        )
        return replace(
            snapshot,
            metadata=replace(snapshot.metadata, last_run=last_run, total_songs=total_songs),
        )

    # Hey future me - a run cut short by max_iterations has NOT finished its window.
    # Completing it would move last_run forward and the charts it never reached
    # would fall outside every later window. So the checkpoint stays and the next
    # sync continues from the cursor.
    async def _keep_checkpoint(
        self, snapshot: SyncSnapshot, after_time: datetime, run_started_at: datetime
    ) -> SyncSnapshot:
        async with self.db.session_scope() as session:
            await SyncStateRepository(session).save_checkpoint(
                after_time, snapshot.cursor, run_started_at
            )
            total_songs = await ChartRepository(session).count()

        logger.warning(
            "catalog_mirror.window_unfinished",
            extra={
                "after_time": to_iso8601(after_time),
                "cursor": snapshot.cursor,
                "pages": snapshot.pages,
            },
        )
        return replace(
            snapshot,
            metadata=replace(
                snapshot.metadata, last_run=run_started_at, total_songs=total_songs
            ),
        )

    async def _record_failure(self, error: Exception) -> None:
        try:
            async with self.db.session_scope() as session:
                await SyncStateRepository(session).record_failure(str(error))
        except Exception:
            # Keep the original error; failing to store it must not replace it
            logger.exception("catalog_mirror.record_failure_failed")

    async def get_state(self) -> MirrorState:
        """Current sync bookkeeping."""
        async with self.db.session_scope() as session:
            return await SyncStateRepository(session).get()

    async def count_charts(self) -> int:
        async with self.db.session_scope() as session:
            return await ChartRepository(session).count()

    async def list_recent(self, limit: int = 100, offset: int = 0) -> list[NormalizedRecord]:
        async with self.db.session_scope() as session:
            return await ChartRepository(session).list_recent(limit=limit, offset=offset)

    async def get_chart(self, group_id: GroupId) -> NormalizedRecord:
        """Get the mirrored record of a song.

        Raises:
            EntityNotFoundException: The song is not in the mirror
        """
        async with self.db.session_scope() as session:
            record = await ChartRepository(session).get(group_id)
        if record is None:
            raise EntityNotFoundException("Chart", group_id)
        return record

    async def find_by_slug(self, slug: str) -> NormalizedRecord:
        """Resolve a chart page slug to the mirrored record.

        Raises:
            ValidationError: The slug carries no md5
            EntityNotFoundException: No mirrored record has that md5
        """
        md5 = md5_from_slug(slug)
        if md5 is None:
            raise ValidationError(f"Slug '{slug}' does not end in a chart md5")

        async with self.db.session_scope() as session:
            record = await ChartRepository(session).get_by_md5(md5)
        if record is None:
            raise EntityNotFoundException("Chart", md5)
        return record

