# Hey future me - this worker runs the catalog sync on a timer AND on demand!
#
# Both paths go through _run_once(), which holds ONE asyncio.Lock for the
# whole run. Two runs at the same time would write the same checkpoint row
# with different cursors, so:
#   - the timer loop just waits for the lock (a manual run is in progress)
#   - trigger() refuses right away with SyncAlreadyRunningError (API -> 409)
#
# stop() sets the cancel event, then waits (up to a grace period) for the lock.
# A run in progress notices the event at its next page boundary and ends with
# SyncCancelledError, checkpoint saved. Only then is the loop task cancelled.
"""Background worker for periodic catalog synchronization."""

import asyncio
import contextlib
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from chartmirror.domain.entities import SyncSnapshot, to_iso8601, utc_now
from chartmirror.domain.exceptions import SyncAlreadyRunningError
from chartmirror.infrastructure.observability.log_messages import LogMessages
from chartmirror.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
)

if TYPE_CHECKING:
    from chartmirror.application.services.chart_mirror_service import ChartMirrorService

logger = logging.getLogger(__name__)

WORKER_NAME = "catalog_sync"

# How long stop() waits for a run in flight to reach its next page boundary
STOP_GRACE_SECONDS = 30.0


class CatalogSyncWorker:
    """Runs ChartMirrorService.sync() every `interval_seconds`.

    Manual runs go through trigger(). Only one run is ever in flight.
    """

    def __init__(
        self,
        service: "ChartMirrorService",
        interval_seconds: int = 3600,
        run_on_startup: bool = False,
    ) -> None:
        """Initialize the worker.

        Args:
            service: Mirror service that performs the actual sync
            interval_seconds: Pause between the end of one run and the next
            run_on_startup: Sync right after start() instead of waiting one interval
        """
        self.service = service
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self._cancel_event = asyncio.Event()

        # Lifecycle tracking for health monitoring
        self._cycles_completed = 0
        self._errors_total = 0
        self._start_time = time.time()
        self._last_sync: datetime | None = None
        self._last_result: dict[str, Any] | None = None
        self._last_error: str | None = None

    @property
    def is_syncing(self) -> bool:
        """True while a sync run holds the lock."""
        return self._lock.locked()

    async def start(self) -> None:
        """Start the periodic loop. Safe to call multiple times."""
        if self._running:
            logger.warning("catalog_sync.already_running")
            return

        self._running = True
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run_loop())

        logger.info(LogMessages.worker_started("Catalog Sync", interval=self.interval_seconds))

    async def stop(self, grace_seconds: float = STOP_GRACE_SECONDS) -> None:
        """Stop the loop and any run in progress. Safe to call multiple times.

        A run in flight is asked to stop via its cancel event and gets up to
        `grace_seconds` to finish the current page and end with
        SyncCancelledError (checkpoint saved, failure recorded). Only a run that
        overstays the grace period is cancelled mid-page.
        """
        self._running = False
        self._cancel_event.set()

        # Holding the lock while the task is cancelled keeps the loop from
        # starting another run in between.
        acquired = False
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=grace_seconds)
            acquired = True
        except TimeoutError:
            logger.warning(
                "catalog_sync.stop_grace_exceeded",
                extra={"worker": WORKER_NAME, "grace_seconds": grace_seconds},
            )

        try:
            if self._task:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
                self._task = None
        finally:
            if acquired:
                self._lock.release()

        logger.info(
            "worker.stopped",
            extra={
                "worker": WORKER_NAME,
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": round(time.time() - self._start_time, 2),
            },
        )

    async def trigger(self) -> SyncSnapshot:
        """Run a sync now and wait for it.

        Raises:
            SyncAlreadyRunningError: Another run is in flight
            SyncRunFailedError: The run failed (also counted in the status)
        """
        if self._lock.locked():
            raise SyncAlreadyRunningError()
        return await self._run_once(trigger="manual")

    async def _run_loop(self) -> None:
        if not self.run_on_startup:
            await asyncio.sleep(self.interval_seconds)

        while self._running:
            # Errors are already counted and logged in _run_once
            with contextlib.suppress(Exception):
                await self._run_once(trigger="scheduled")

            if self._cycles_completed and self._cycles_completed % 10 == 0:
                log_worker_health(
                    logger=logger,
                    worker_name=WORKER_NAME,
                    cycles_completed=self._cycles_completed,
                    errors_total=self._errors_total,
                    uptime_seconds=time.time() - self._start_time,
                )

            await asyncio.sleep(self.interval_seconds)

    async def _run_once(self, trigger: str) -> SyncSnapshot:
        async with self._lock:
            self._cancel_event = asyncio.Event()
            try:
                async with log_operation(logger, "catalog_sync.run", trigger=trigger):
                    snapshot = await self.service.sync(cancel_event=self._cancel_event)
            except Exception as e:
                self._errors_total += 1
                self._last_error = str(e)
                logger.error(
                    LogMessages.worker_failed(
                        "Catalog Sync", str(e), will_retry=self._running
                    )
                )
                raise

            self._cycles_completed += 1
            self._last_sync = utc_now()
            self._last_error = None
            self._last_result = {
                "trigger": trigger,
                "total_songs": snapshot.total_songs,
                "total_charts": snapshot.total_charts,
                "pages": snapshot.pages,
                "cursor": snapshot.cursor,
                "converged": snapshot.converged,
                "last_run": to_iso8601(snapshot.metadata.last_run),
            }
            return snapshot

    def get_status(self) -> dict[str, Any]:
        """Worker state for the status endpoint."""
        return {
            "running": self._running,
            "syncing": self.is_syncing,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self._cycles_completed,
            "errors_total": self._errors_total,
            "last_sync": to_iso8601(self._last_sync) if self._last_sync else None,
            "last_result": self._last_result,
            "last_error": self._last_error,
        }
