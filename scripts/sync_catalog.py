#!/usr/bin/env python3
"""Run one catalog crawl and write the result as JSON.

Hey future me - this is the "no server, no database" way to get the catalog:
one crawl from --after (default: the epoch, i.e. everything) until a page
brings no new songs, then {"charts": [...], "metadata": {...}} goes to a file.
Feed the metadata.lastRun of one export into --after of the next to get only
what changed in between.

Usage:
    python scripts/sync_catalog.py --output charts.json

    # Incremental, capped at 3 pages while testing:
    python scripts/sync_catalog.py --after 2024-05-01T00:00:00.000Z --max-iterations 3
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from chartmirror.application.services.catalog_sync_service import (  # noqa: E402
    CatalogSyncEngine,
)
from chartmirror.config import get_settings  # noqa: E402
from chartmirror.domain.entities import UNIX_EPOCH, NormalizedRecord  # noqa: E402
from chartmirror.domain.exceptions import SyncRunError  # noqa: E402
from chartmirror.infrastructure.integrations import EncoreCatalogClient  # noqa: E402
from chartmirror.infrastructure.observability import configure_logging  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--after",
        type=lambda value: datetime.fromisoformat(value.replace("Z", "+00:00")),
        default=UNIX_EPOCH,
        help="Only charts modified at/after this ISO-8601 time (default: everything)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("charts.json"),
        help="Where to write the result (default: charts.json)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Stop after this many pages (for testing against the live API)",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )

    def report(records: list[NormalizedRecord], cursor: int) -> None:
        print(f"  page done: {len(records)} charts, cursor {cursor}")

    async with EncoreCatalogClient(settings.catalog) as client:
        engine = CatalogSyncEngine(
            client, max_iterations=args.max_iterations or settings.sync.max_iterations
        )
        try:
            snapshot = await engine.run(args.after, report)
        except SyncRunError as e:
            print(f"ERROR: {e.message}", file=sys.stderr)
            print(f"  progress: {json.dumps(e.progress.to_dict())}", file=sys.stderr)
            return 1

    args.output.write_text(json.dumps(snapshot.to_result(), indent=2), encoding="utf-8")
    print(
        f"Wrote {snapshot.total_songs} songs ({snapshot.total_charts} charts, "
        f"{snapshot.pages} pages) to {args.output}"
    )
    if not snapshot.converged:
        print(
            "  stopped by --max-iterations; continue with the same --after "
            f"once the crawl is allowed to finish (last chart id {snapshot.cursor})"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
