"""Tests for log message templates and logger helpers."""

import logging

import pytest

from chartmirror.infrastructure.observability.log_messages import LogMessages, LogTemplate
from chartmirror.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
)


class TestLogTemplate:
    """Tree rendering of LogTemplate.format()."""

    def test_fields_and_hint(self):
        template = LogTemplate(
            icon="🔄",
            title="Something Happened",
            fields={"Cursor": "{cursor}", "Pages": "{pages}"},
            hint="Retry from {cursor}",
        )

        text = template.format(cursor=7, pages=2)

        assert text.splitlines() == [
            "🔄 Something Happened",
            "├─ Cursor: 7",
            "├─ Pages: 2",
            "└─ 💡 Retry from 7",
        ]

    def test_last_field_closes_tree_without_hint(self):
        text = LogTemplate(icon="✅", title="Done", fields={"A": "1", "B": "2"}).format()

        assert text.splitlines()[-1] == "└─ B: 2"

    def test_missing_placeholder_is_marked(self):
        text = LogTemplate(icon="!", title="T", fields={"X": "{nope}"}).format(other=1)

        assert "<missing: 'nope'>" in text

    def test_literal_braces_survive(self):
        """Error text from a JSON body must not break the message."""
        reason = 'Catalog said {"error": "busy"}'
        text = LogMessages.sync_failed(reason, cursor=3, pages=1)

        assert reason in text

    def test_braces_in_record_and_worker_errors(self):
        assert "{bad}" in LogMessages.fetch_failed("Catalog", "cursor 1", "body {bad}")
        assert "{x}" in LogMessages.worker_failed("Catalog Sync", "boom {x}")
        assert "groupId{}" in LogMessages.malformed_record(4, ["groupId{}"])


class TestLogMessages:
    """Catalog sync message helpers."""

    def test_sync_page(self):
        text = LogMessages.sync_page(
            after_time="1970-01-01T00:00:00.000Z",
            cursor_before=0,
            cursor_after=250,
            new_songs=180,
            total_songs=180,
            total_charts=250,
        )

        assert text.startswith("📄 Catalog Page Processed")
        assert "├─ Chart ID after: 0" in text
        assert "├─ Last chart ID: 250" in text
        assert "└─ Total charts: 250" in text

    def test_sync_started_page_size_is_optional(self):
        assert "Page size" not in LogMessages.sync_started("x", 0)
        assert "└─ Page size: 250" in LogMessages.sync_started("x", 0, per_page=250)

    def test_sync_completed_duration(self):
        text = LogMessages.sync_completed(2, 3, pages=3, cursor=3, duration_seconds=1.234)

        assert "└─ Duration: 1.2s" in text

    def test_sync_failed_hint_names_cursor(self):
        text = LogMessages.sync_failed("Catalog returned HTTP 503", cursor=41872, pages=4)

        assert "└─ 💡 Resume later - the next run continues from cursor 41872" in text

    def test_rate_limited(self):
        text = LogMessages.rate_limited("Catalog", wait_seconds=2.0, attempt=1, max_attempts=6)

        assert "├─ Waiting: 2.0s" in text
        assert "└─ Attempt: 1/6" in text

    def test_fetch_failed_default_hint(self):
        text = LogMessages.fetch_failed("Catalog", "cursor 5", "HTTP 500")

        assert "Check if Catalog is reachable" in text

    def test_malformed_record_without_fields(self):
        text = LogMessages.malformed_record(12, [])

        assert "└─ Fields: <unknown>" in text

    @pytest.mark.parametrize(("will_retry", "status"), [(True, "Will retry"), (False, "Stopped")])
    def test_worker_failed(self, will_retry, status):
        text = LogMessages.worker_failed("Catalog Sync", "boom", will_retry=will_retry)

        assert f"└─ Status: {status}" in text


class TestLoggerTemplate:
    """log_operation() and log_worker_health()."""

    async def test_log_operation_success(self, caplog):
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("chartmirror.test.operation")

        async with log_operation(logger, "catalog_sync.run", trigger="manual"):
            pass

        messages = [record.getMessage() for record in caplog.records]
        assert messages == ["catalog_sync.run.started", "catalog_sync.run.completed"]
        assert caplog.records[-1].trigger == "manual"
        assert caplog.records[-1].duration_ms >= 0

    async def test_log_operation_failure_reraises(self, caplog):
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("chartmirror.test.operation")

        with pytest.raises(RuntimeError):
            async with log_operation(logger, "catalog_sync.run"):
                raise RuntimeError("boom")

        failed = caplog.records[-1]
        assert failed.getMessage() == "catalog_sync.run.failed"
        assert failed.levelno == logging.ERROR
        assert failed.error_type == "RuntimeError"
        assert failed.error == "boom"

    def test_log_worker_health(self, caplog):
        caplog.set_level(logging.INFO)
        logger = logging.getLogger("chartmirror.test.worker")

        log_worker_health(logger, "catalog_sync", 10, 1, 3600.7, extra_stats={"pages": 4})

        record = caplog.records[-1]
        assert record.getMessage() == "worker.health"
        assert record.cycles_completed == 10
        assert record.uptime_seconds == 3600
        assert record.pages == 4
