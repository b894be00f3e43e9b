"""Repository implementations for the chart mirror."""

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chartmirror.domain.entities import (
    GroupId,
    MirrorState,
    NormalizedRecord,
    ensure_utc_aware,
)
from chartmirror.infrastructure.persistence.models import ChartModel, SyncStateModel

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; stay well below it for IN (...) lookups
_IN_CLAUSE_CHUNK = 500


def _group_key(group_id: GroupId) -> str:
    return str(group_id)


def _md5_key(md5: str | None) -> str | None:
    return md5.lower() if md5 else None


def _to_record(model: ChartModel) -> NormalizedRecord:
    return NormalizedRecord.model_validate(model.payload)


class ChartRepository:
    """Repository for mirrored chart records (one row per groupId)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Hey future me - same recency rule as DedupMerger: a stored row is only replaced by
    # a STRICTLY newer modifiedTime, no matter which run or page the record came from.
    async def upsert_many(self, records: Iterable[NormalizedRecord]) -> int:
        """Insert new songs and replace stored ones with strictly newer records.

        Args:
            records: Normalized records, possibly several per groupId

        Returns:
            Number of rows inserted or replaced
        """
        incoming: dict[str, NormalizedRecord] = {}
        for record in records:
            key = _group_key(record.group_id)
            current = incoming.get(key)
            if current is None or record.modified_time > current.modified_time:
                incoming[key] = record
        if not incoming:
            return 0

        existing = await self._load_existing(list(incoming))

        written = 0
        for key, record in incoming.items():
            payload = record.to_catalog_dict()
            model = existing.get(key)
            if model is None:
                self.session.add(
                    ChartModel(
                        group_id=key,
                        md5=_md5_key(record.md5),
                        name=record.name,
                        artist=record.artist,
                        modified_time=record.modified_time,
                        payload=payload,
                    )
                )
                written += 1
            elif record.modified_time > ensure_utc_aware(model.modified_time):
                model.md5 = _md5_key(record.md5)
                model.name = record.name
                model.artist = record.artist
                model.modified_time = record.modified_time
                model.payload = payload
                written += 1

        await self.session.flush()
        logger.debug(
            "chart_repository.upserted",
            extra={"incoming": len(incoming), "written": written},
        )
        return written

    async def _load_existing(self, keys: list[str]) -> dict[str, ChartModel]:
        found: dict[str, ChartModel] = {}
        for start in range(0, len(keys), _IN_CLAUSE_CHUNK):
            chunk = keys[start : start + _IN_CLAUSE_CHUNK]
            stmt = select(ChartModel).where(ChartModel.group_id.in_(chunk))
            result = await self.session.execute(stmt)
            for model in result.scalars():
                found[model.group_id] = model
        return found

    async def get(self, group_id: GroupId) -> NormalizedRecord | None:
        """Get the mirrored record for a groupId."""
        model = await self.session.get(ChartModel, _group_key(group_id))
        return _to_record(model) if model else None

    async def get_by_md5(self, md5: str) -> NormalizedRecord | None:
        """Get the mirrored record whose chart md5 matches."""
        stmt = select(ChartModel).where(ChartModel.md5 == md5.lower()).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_record(model) if model else None

    async def count(self) -> int:
        """Number of mirrored songs."""
        result = await self.session.execute(select(func.count()).select_from(ChartModel))
        return int(result.scalar_one())

    async def list_recent(self, limit: int = 100, offset: int = 0) -> list[NormalizedRecord]:
        """Mirrored records ordered by most recently modified."""
        stmt = (
            select(ChartModel)
            .order_by(ChartModel.modified_time.desc(), ChartModel.group_id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [_to_record(model) for model in result.scalars()]


class SyncStateRepository:
    """Repository for the single-row sync bookkeeping table."""

    STATE_ID = 1

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_or_create(self) -> SyncStateModel:
        model = await self.session.get(SyncStateModel, self.STATE_ID)
        if model is None:
            model = SyncStateModel(id=self.STATE_ID, total_songs=0)
            self.session.add(model)
            await self.session.flush()
        return model

    async def get(self) -> MirrorState:
        """Current mirror bookkeeping (defaults if nothing was stored yet)."""
        model = await self.session.get(SyncStateModel, self.STATE_ID)
        if model is None:
            return MirrorState()
        return MirrorState(
            last_run=ensure_utc_aware(model.last_run) if model.last_run else None,
            total_songs=model.total_songs,
            checkpoint_after_time=(
                ensure_utc_aware(model.checkpoint_after_time)
                if model.checkpoint_after_time
                else None
            ),
            checkpoint_cursor=model.checkpoint_cursor,
            checkpoint_started_at=(
                ensure_utc_aware(model.checkpoint_started_at)
                if model.checkpoint_started_at
                else None
            ),
            last_error=model.last_error,
        )

    async def save_checkpoint(
        self, after_time: datetime, cursor: int, started_at: datetime
    ) -> None:
        """Remember where an in-flight run is, for resume after a crash or failure."""
        model = await self._get_or_create()
        model.checkpoint_after_time = after_time
        model.checkpoint_cursor = cursor
        model.checkpoint_started_at = started_at
        await self.session.flush()

    async def complete_run(self, last_run: datetime, total_songs: int) -> None:
        """Record a finished run and clear the checkpoint."""
        model = await self._get_or_create()
        model.last_run = last_run
        model.total_songs = total_songs
        model.checkpoint_after_time = None
        model.checkpoint_cursor = None
        model.checkpoint_started_at = None
        model.last_error = None
        await self.session.flush()

    async def record_failure(self, error: str) -> None:
        """Store the error of a failed run. The checkpoint is kept."""
        model = await self._get_or_create()
        model.last_error = error
        await self.session.flush()
