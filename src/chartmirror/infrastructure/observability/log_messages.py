"""Structured log message templates for consistent, human-readable logging.

Hey future me - instead of cryptic one-liners like "Fetch failed 503", sync
logs look like this:

    ❌ Catalog Sync Failed
    ├─ Reason: Catalog returned HTTP 503
    ├─ Cursor: 41872
    └─ 💡 Resume later - the next run continues from cursor 41872

Icon first for quick scanning, then the event, then context fields, then an
optional hint.

Usage:
    from chartmirror.infrastructure.observability.log_messages import LogMessages

    logger.info(LogMessages.sync_page(cursor_before=0, cursor_after=250, ...))
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class LogTemplate:
    """A reusable log message template with placeholders.

    format() replaces {placeholders} in field values and the hint, and adds
    the icon and tree structure.
    """

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self, **kwargs: Any) -> str:
        """Format the template with provided values.

        Returns:
            Multi-line log message with icon, title, fields, and optional hint
        """
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value_template) in enumerate(field_items):
            # Last field uses └─ instead of ├─
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"

            try:
                value = value_template.format(**kwargs)
            except KeyError as e:
                value = f"<missing: {e}>"

            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            try:
                hint_text = self.hint.format(**kwargs)
            except KeyError as e:
                hint_text = f"<missing: {e}>"
            lines.append(f"└─ 💡 {hint_text}")

        return "\n".join(lines)


class LogMessages:
    """Collection of standardized log message templates.

    Template categories:
    - Catalog sync lifecycle (started / page / completed / failed / cancelled)
    - Catalog fetch problems (rate limit, fatal status, malformed record)
    - Worker lifecycle
    """

    # === Catalog Sync ===

    @staticmethod
    def sync_started(after_time: str, cursor: int, per_page: int | None = None) -> str:
        """Format a sync start message."""
        fields = {"Modified after": after_time, "Cursor": str(cursor)}
        if per_page is not None:
            fields["Page size"] = str(per_page)

        return LogTemplate(icon="🔄", title="Catalog Sync Started", fields=fields).format()

    @staticmethod
    def sync_page(
        after_time: str,
        cursor_before: int,
        cursor_after: int,
        new_songs: int,
        total_songs: int,
        total_charts: int,
    ) -> str:
        """Format the per-page progress message."""
        template = LogTemplate(
            icon="📄",
            title="Catalog Page Processed",
            fields={
                "Modified after": "{after_time}",
                "Chart ID after": "{cursor_before}",
                "Last chart ID": "{cursor_after}",
                "New songs": "{new_songs}",
                "Total songs": "{total_songs}",
                "Total charts": "{total_charts}",
            },
        )
        return template.format(
            after_time=after_time,
            cursor_before=cursor_before,
            cursor_after=cursor_after,
            new_songs=new_songs,
            total_songs=total_songs,
            total_charts=total_charts,
        )

    @staticmethod
    def sync_completed(
        total_songs: int,
        total_charts: int,
        pages: int,
        cursor: int,
        duration_seconds: float | None = None,
    ) -> str:
        """Format a sync completion message."""
        fields = {
            "Songs": str(total_songs),
            "Charts": str(total_charts),
            "Pages": str(pages),
            "Cursor": str(cursor),
        }
        if duration_seconds is not None:
            fields["Duration"] = f"{duration_seconds:.1f}s"

        return LogTemplate(icon="✅", title="Catalog Sync Complete", fields=fields).format()

    @staticmethod
    def sync_failed(error: str, cursor: int, pages: int) -> str:
        """Format a sync failure message."""
        template = LogTemplate(
            icon="❌",
            title="Catalog Sync Failed",
            fields={"Reason": "{error}", "Cursor": "{cursor}", "Pages done": "{pages}"},
            hint="Resume later - the next run continues from cursor {cursor}",
        )
        return template.format(error=error, cursor=cursor, pages=pages)

    @staticmethod
    def sync_cancelled(cursor: int, pages: int) -> str:
        """Format a sync cancellation message."""
        template = LogTemplate(
            icon="⏹️",
            title="Catalog Sync Cancelled",
            fields={"Cursor": "{cursor}", "Pages done": "{pages}"},
        )
        return template.format(cursor=cursor, pages=pages)

    # === Catalog Fetch ===

    @staticmethod
    def rate_limited(
        service: str,
        wait_seconds: float,
        attempt: int,
        max_attempts: int,
    ) -> str:
        """Format a 429 backoff message."""
        template = LogTemplate(
            icon="⏳",
            title=f"{service} Rate Limited",
            fields={
                "Waiting": f"{wait_seconds:.1f}s",
                "Attempt": f"{attempt}/{max_attempts}",
            },
        )
        return template.format()

    @staticmethod
    def fetch_failed(
        service: str,
        target: str,
        error: str,
        hint: str | None = None,
    ) -> str:
        """Format a fatal fetch failure."""
        template = LogTemplate(
            icon="🔴",
            title=f"{service} Request Failed",
            fields={"Target": "{target}", "Reason": "{error}"},
            hint=hint or f"Check if {service} is reachable and the URL is correct",
        )
        return template.format(target=target, error=error)

    @staticmethod
    def malformed_record(chart_id: Any, fields: list[str]) -> str:
        """Format a skipped-record warning."""
        template = LogTemplate(
            icon="⚠️",
            title="Malformed Catalog Record Skipped",
            fields={
                "Chart ID": "{chart_id}",
                "Fields": "{fields}",
            },
        )
        return template.format(chart_id=chart_id, fields=", ".join(fields) or "<unknown>")

    # === Worker Lifecycle ===

    @staticmethod
    def worker_started(worker: str, interval: int | None = None) -> str:
        """Format a worker start message."""
        fields: dict[str, str] = {}
        if interval:
            fields["Interval"] = f"{interval}s"

        return LogTemplate(icon="✅", title=f"{worker} Started", fields=fields).format()

    @staticmethod
    def worker_failed(worker: str, error: str, will_retry: bool = True) -> str:
        """Format a worker failure message."""
        status = "Will retry" if will_retry else "Stopped"

        template = LogTemplate(
            icon="❌",
            title=f"{worker} Failed",
            fields={"Reason": "{error}", "Status": status},
        )
        return template.format(error=error)
