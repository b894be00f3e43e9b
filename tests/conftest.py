"""Shared fixtures: an in-memory catalog and record builders."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from chartmirror.config import CatalogSettings, Settings
from chartmirror.domain.entities import ensure_utc_aware, to_iso8601
from chartmirror.domain.ports import ICatalogClient

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_chart(
    chart_id: int | None,
    group_id: Any,
    modified: datetime | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Raw catalog record the way the search API returns it."""
    record: dict[str, Any] = {
        "chartId": chart_id,
        "groupId": group_id,
        "modifiedTime": to_iso8601(modified or BASE_TIME),
        "name": f"Song {group_id}",
        "artist": "Test Artist",
        "md5": f"{chart_id or 0:032x}",
        # Not on the allow-list, must never reach a NormalizedRecord
        "notesData": {"instruments": ["guitar"]},
    }
    record.update(extra)
    return record


class FakeCatalog(ICatalogClient):
    """In-memory catalog that pages the way the search API does.

    Returns records with chartId > cursor and modifiedTime >= after_time,
    ordered by chartId, page_size at a time. `fail_at` maps a cursor to an
    exception raised whenever that cursor is requested.
    """

    def __init__(
        self,
        records: list[dict[str, Any]],
        page_size: int = 2,
        fail_at: dict[int, Exception] | None = None,
    ) -> None:
        self.records = records
        self.page_size = page_size
        self.fail_at = fail_at or {}
        self.calls: list[tuple[datetime, int]] = []
        self.closed = False

    async def fetch_page(self, after_time: datetime, cursor: int) -> list[dict[str, Any]]:
        self.calls.append((after_time, cursor))
        if cursor in self.fail_at:
            raise self.fail_at[cursor]

        matching = [
            record
            for record in self.records
            if isinstance(record.get("chartId"), int)
            and record["chartId"] > cursor
            and _modified(record) >= ensure_utc_aware(after_time)
        ]
        matching.sort(key=lambda record: record["chartId"])
        return [dict(record) for record in matching[: self.page_size]]

    async def close(self) -> None:
        self.closed = True


def _modified(record: dict[str, Any]) -> datetime:
    return datetime.fromisoformat(record["modifiedTime"].replace("Z", "+00:00"))


@pytest.fixture
def t0() -> datetime:
    """Reference modifiedTime for test records."""
    return BASE_TIME


@pytest.fixture
def chart() -> Callable[..., dict[str, Any]]:
    """Builder for raw catalog records: chart(chart_id, group_id, modified, **extra)."""
    return make_chart


@pytest.fixture
def fake_catalog() -> Callable[..., FakeCatalog]:
    """Factory for in-memory catalogs: fake_catalog(records, page_size=2, fail_at=None)."""
    return FakeCatalog


@pytest.fixture
def fast_catalog_settings() -> CatalogSettings:
    """Catalog settings with no real waiting (429 backoff 0s, huge token bucket)."""
    return CatalogSettings(
        base_url="https://catalog.test",
        per_page=2,
        max_retries=2,
        initial_backoff_seconds=0.0,
        max_backoff_seconds=0.0,
        requests_per_second=10_000.0,
        burst=100,
    )


@pytest.fixture
def settings(tmp_path: Any, fast_catalog_settings: CatalogSettings) -> Settings:
    """Settings pointing at a throwaway SQLite file, periodic sync off."""
    return Settings(
        catalog=fast_catalog_settings,
        database={"url": f"sqlite+aiosqlite:///{tmp_path}/mirror.db"},
        sync={"enabled": False},
    )


@pytest.fixture
def restore_root_logger():
    """configure_logging() rewires the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
