"""Per-run map of logical song -> latest normalized record."""

from collections.abc import Iterator, Mapping
from enum import Enum

from chartmirror.domain.entities import GroupId, NormalizedRecord


class MergeOutcome(str, Enum):
    """What observe() did with a record."""

    INSERTED = "inserted"  # first record for this group - a NEW song
    REPLACED = "replaced"  # strictly newer modifiedTime - an update
    DISCARDED = "discarded"  # same age or older - ignored


class DedupMerger:
    """Keeps exactly one record per groupId, the one with the latest modifiedTime.

    Hey future me - the merge is last-write-wins by modifiedTime, NOT by
    arrival order. Equal timestamps keep whichever record came first, so page
    order only matters for ties.

    One merger belongs to one sync run. Build a fresh instance per run (or
    seed it with an existing mirror to merge against it).
    """

    def __init__(self, seed: Mapping[GroupId, NormalizedRecord] | None = None) -> None:
        self._records: dict[GroupId, NormalizedRecord] = dict(seed or {})

    def is_new_group(self, group_id: GroupId) -> bool:
        """True if no record for this group has been observed yet."""
        return group_id not in self._records

    def observe(self, record: NormalizedRecord) -> MergeOutcome:
        """Merge one record under its groupId."""
        existing = self._records.get(record.group_id)
        if existing is None:
            self._records[record.group_id] = record
            return MergeOutcome.INSERTED
        if record.modified_time > existing.modified_time:
            self._records[record.group_id] = record
            return MergeOutcome.REPLACED
        return MergeOutcome.DISCARDED

    def get(self, group_id: GroupId) -> NormalizedRecord | None:
        return self._records.get(group_id)

    def snapshot(self) -> dict[GroupId, NormalizedRecord]:
        """Copy of the current groupId -> record map."""
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._records

    def __iter__(self) -> Iterator[GroupId]:
        return iter(self._records)
