"""SQLAlchemy ORM models for the chart mirror."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from chartmirror.domain.entities import utc_now


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Hey future me - one row per LOGICAL SONG (groupId), not per chart! The payload column
# holds the full normalized record in wire form; the other columns are copies of the
# fields we look things up by. group_id is stored as text because the catalog's ids are
# opaque to us.
class ChartModel(Base):
    """Mirrored chart record, one per groupId."""

    __tablename__ = "charts"

    group_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    md5: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    artist: Mapped[str | None] = mapped_column(Text, nullable=True)
    modified_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


# Single-row table (id is always 1). checkpoint_* are only set while a run is in flight
# or after a run failed; a completed run clears them.
class SyncStateModel(Base):
    """Bookkeeping for incremental sync runs."""

    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_songs: Mapped[int] = mapped_column(Integer, default=0)
    checkpoint_after_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    checkpoint_cursor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checkpoint_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
