"""Domain entities for the chart catalog mirror."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Encore hands out integer group ids, but nothing in the sync logic depends on
# that - any hashable scalar works as a logical song identity.
GroupId = int | str

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def to_iso8601(dt: datetime) -> str:
    """Format a datetime the way the catalog API expects (``...T12:00:00.000Z``)."""
    return (
        ensure_utc_aware(dt)
        .astimezone(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class NormalizedRecord(BaseModel):
    """The subset of a catalog record the mirror keeps.

    Hey future me - this is the ALLOW-LIST! Anything the catalog sends that
    isn't a field here gets dropped on validation (extra="ignore"). Field
    aliases are the catalog's wire names, so model_validate(raw) works on the
    raw JSON and to_catalog_dict() gives the same shape back.

    Only group_id and modified_time are required - those are the identity and
    the recency key for dedup. Everything else is optional metadata.

    Instances are frozen. A newer record for the same group replaces the old
    one completely; nobody patches fields in place.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    # Identity
    group_id: GroupId = Field(alias="groupId")
    modified_time: datetime = Field(alias="modifiedTime")

    # Song metadata
    name: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    year: str | None = None
    md5: str | None = None
    charter: str | None = None
    song_length: int | None = None

    # Difficulty ratings (-1 / null means "no part")
    diff_band: int | None = None
    diff_guitar: int | None = None
    diff_guitar_coop: int | None = None
    diff_rhythm: int | None = None
    diff_bass: int | None = None
    diff_drums: int | None = None
    diff_drums_real: int | None = None
    diff_keys: int | None = None
    diff_guitarghl: int | None = None
    diff_guitar_coop_ghl: int | None = None
    diff_rhythm_ghl: int | None = None
    diff_bassghl: int | None = None
    diff_vocals: int | None = None

    # Feature flags
    five_lane_drums: bool | None = None
    pro_drums: bool | None = None
    has_lyrics: bool | None = Field(default=None, alias="hasLyrics")
    has_2x_kick: bool | None = Field(default=None, alias="has2xKick")
    has_video_background: bool | None = Field(default=None, alias="hasVideoBackground")

    @field_validator("modified_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return ensure_utc_aware(value)

    def to_catalog_dict(self) -> dict[str, Any]:
        """Serialize back to wire names, keeping only fields the catalog sent."""
        data = self.model_dump(by_alias=True, mode="json", exclude_unset=True)
        data["modifiedTime"] = to_iso8601(self.modified_time)
        return data


# Wire names of every field the mirror keeps, in declaration order.
ALLOWED_FIELDS: tuple[str, ...] = tuple(
    info.alias or name for name, info in NormalizedRecord.model_fields.items()
)
REQUIRED_FIELDS: tuple[str, ...] = ("groupId", "modifiedTime")


@dataclass(frozen=True)
class SyncProgress:
    """How far a sync run got. Attached to SyncRunError on failure."""

    cursor: int
    pages_completed: int
    songs_seen: int
    charts_seen: int
    started_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and API responses."""
        return {
            "cursor": self.cursor,
            "pagesCompleted": self.pages_completed,
            "songsSeen": self.songs_seen,
            "chartsSeen": self.charts_seen,
            "startedAt": to_iso8601(self.started_at),
        }


@dataclass(frozen=True)
class SyncMetadata:
    """Run metadata returned alongside the charts."""

    last_run: datetime
    total_songs: int

    def to_dict(self) -> dict[str, Any]:
        return {"lastRun": to_iso8601(self.last_run), "totalSongs": self.total_songs}


@dataclass(frozen=True)
class MirrorState:
    """Persisted bookkeeping of the local mirror between runs.

    checkpoint_* describe an unfinished run: the time window it was crawling,
    the last cursor it reported and when it originally started. A finished run
    clears them.
    """

    last_run: datetime | None = None
    total_songs: int = 0
    checkpoint_after_time: datetime | None = None
    checkpoint_cursor: int | None = None
    checkpoint_started_at: datetime | None = None
    last_error: str | None = None

    @property
    def has_checkpoint(self) -> bool:
        return self.checkpoint_after_time is not None and self.checkpoint_cursor is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastRun": to_iso8601(self.last_run) if self.last_run else None,
            "totalSongs": self.total_songs,
            "checkpoint": (
                {
                    "afterTime": to_iso8601(self.checkpoint_after_time),
                    "cursor": self.checkpoint_cursor,
                }
                if self.checkpoint_after_time is not None and self.checkpoint_cursor is not None
                else None
            ),
            "lastError": self.last_error,
        }


@dataclass
class SyncSnapshot:
    """Deduplicated result of a finished sync run.

    Attributes:
        charts: groupId -> latest NormalizedRecord seen during the run
        metadata: run start time and number of logical songs
        cursor: highest chartId seen (resume point for the next run)
        pages: number of pages fetched
        total_charts: number of valid chart records seen, duplicates included
        converged: False when max_iterations cut the run short; the window is
            not finished and the next run has to continue it
    """

    charts: dict[GroupId, NormalizedRecord]
    metadata: SyncMetadata
    cursor: int = 0
    pages: int = 0
    total_charts: int = 0
    converged: bool = True

    @property
    def total_songs(self) -> int:
        return self.metadata.total_songs

    def to_result(self) -> dict[str, Any]:
        """Run result in catalog wire form: ``{charts: [...], metadata: {...}}``."""
        return {
            "charts": [record.to_catalog_dict() for record in self.charts.values()],
            "metadata": self.metadata.to_dict(),
        }


__all__ = [
    "ALLOWED_FIELDS",
    "GroupId",
    "MirrorState",
    "NormalizedRecord",
    "REQUIRED_FIELDS",
    "SyncMetadata",
    "SyncProgress",
    "SyncSnapshot",
    "UNIX_EPOCH",
    "ensure_utc_aware",
    "to_iso8601",
    "utc_now",
]
