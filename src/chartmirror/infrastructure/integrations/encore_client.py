"""Encore catalog search client with bounded 429 handling.

Hey future me - Encore (enchor.us) is the public chart search behind the
Clone Hero community catalog. We only use ONE endpoint: POST /search/advanced.
Paging is done with `chartIdAfter` + `per_page`; `modifiedAfter` limits the
search to charts edited since the last run.

Status handling:
- 2xx → return `data` (list of raw chart records)
- 429 → back off and retry the SAME request, at most max_retries times.
        Past that bound → RateLimitExceededError (a FatalFetchError).
- anything else → FatalFetchError right away. We never turn a failed page into
  an empty page; an empty page means "converged" to the sync engine and would
  silently lose data.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from chartmirror.config.settings import CatalogSettings
from chartmirror.domain.entities import to_iso8601
from chartmirror.domain.exceptions import FatalFetchError, RateLimitExceededError
from chartmirror.domain.ports import ICatalogClient
from chartmirror.infrastructure.observability.log_messages import LogMessages
from chartmirror.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Text filters the search form sends when a field is left empty
_EMPTY_TEXT_FILTER: dict[str, Any] = {"value": "", "exact": False, "exclude": False}


def build_search_body(after_time: datetime, cursor: int, per_page: int) -> dict[str, Any]:
    """Build the advanced-search request body with every filter set to "no filter".

    Args:
        after_time: modifiedAfter bound
        cursor: chartIdAfter bound
        per_page: Page size

    Returns:
        JSON-serializable request body
    """
    return {
        "instrument": None,
        "difficulty": None,
        "drumType": None,
        "source": "website",
        "name": dict(_EMPTY_TEXT_FILTER),
        "artist": dict(_EMPTY_TEXT_FILTER),
        "album": dict(_EMPTY_TEXT_FILTER),
        "genre": dict(_EMPTY_TEXT_FILTER),
        "year": dict(_EMPTY_TEXT_FILTER),
        "charter": dict(_EMPTY_TEXT_FILTER),
        "minLength": None,
        "maxLength": None,
        "minIntensity": None,
        "maxIntensity": None,
        "minAverageNPS": None,
        "maxAverageNPS": None,
        "minMaxNPS": None,
        "maxMaxNPS": None,
        "minYear": None,
        "maxYear": None,
        "modifiedAfter": to_iso8601(after_time),
        "hash": "",
        "trackHash": "",
        "hasSoloSections": None,
        "hasForcedNotes": None,
        "hasOpenNotes": None,
        "hasTapNotes": None,
        "hasLyrics": None,
        "hasVocals": None,
        "hasRollLanes": None,
        "has2xKick": None,
        "hasIssues": None,
        "hasVideoBackground": None,
        "modchart": None,
        "chartIdAfter": cursor,
        "per_page": per_page,
    }


def parse_retry_after(response: httpx.Response) -> float | None:
    """Seconds from a numeric Retry-After header, or None.

    HTTP-date Retry-After values are ignored (we fall back to our own backoff).
    """
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class EncoreCatalogClient(ICatalogClient):
    """HTTP client for the Encore advanced-search API.

    Usage:
        async with EncoreCatalogClient(settings.catalog) as client:
            records = await client.fetch_page(after_time, cursor=0)
    """

    SERVICE_NAME = "Encore"

    def __init__(
        self,
        settings: CatalogSettings,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize Encore client.

        Args:
            settings: Catalog configuration
            http_client: Optional pre-built client (tests pass one with a MockTransport).
                An injected client is NOT closed by close().
            rate_limiter: Optional limiter; defaults to one built from settings
        """
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None
        self._rate_limiter = rate_limiter or RateLimiter.for_catalog(settings)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "application/json, text/plain, */*",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.timeout_seconds,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> EncoreCatalogClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def fetch_page(self, after_time: datetime, cursor: int) -> list[dict[str, Any]]:
        """Fetch one page of charts modified at/after after_time with chartId > cursor.

        Raises:
            RateLimitExceededError: Still 429 after max_retries retries
            FatalFetchError: Any other non-2xx, network failure or bad body
        """
        client = await self._get_client()
        url = self.settings.search_url
        body = build_search_body(after_time, cursor, self.settings.per_page)
        max_attempts = self.settings.max_retries + 1

        for attempt in range(1, max_attempts + 1):
            try:
                async with self._rate_limiter:
                    response = await client.post(url, json=body)
            except httpx.HTTPError as e:
                logger.error(
                    LogMessages.fetch_failed(
                        service=self.SERVICE_NAME, target=url, error=f"{type(e).__name__}: {e}"
                    )
                )
                raise FatalFetchError(
                    f"Network error fetching catalog page after chart {cursor}: {e}",
                    cursor=cursor,
                ) from e

            if response.status_code == 429:
                if attempt >= max_attempts:
                    logger.error(
                        LogMessages.fetch_failed(
                            service=self.SERVICE_NAME,
                            target=url,
                            error=f"Still rate limited after {attempt} attempts",
                            hint="Lower catalog.requests_per_second or raise catalog.max_retries",
                        )
                    )
                    raise RateLimitExceededError(
                        f"Catalog rate limit persisted after {attempt} attempts",
                        attempts=attempt,
                        cursor=cursor,
                    )

                retry_after = parse_retry_after(response)
                logger.warning(
                    LogMessages.rate_limited(
                        service=self.SERVICE_NAME,
                        wait_seconds=self._rate_limiter.next_backoff(retry_after),
                        attempt=attempt,
                        max_attempts=max_attempts,
                    )
                )
                await self._rate_limiter.handle_rate_limit_response(retry_after)
                continue

            if not response.is_success:
                logger.error(
                    LogMessages.fetch_failed(
                        service=self.SERVICE_NAME,
                        target=url,
                        error=f"HTTP {response.status_code} {response.reason_phrase}",
                    )
                )
                raise FatalFetchError(
                    f"Catalog returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    cursor=cursor,
                )

            self._rate_limiter.reset_backoff()
            return self._parse_page(response, cursor)

        # Loop always returns or raises; this keeps type checkers happy
        raise RateLimitExceededError(
            "Catalog rate limit retries exhausted", attempts=max_attempts, cursor=cursor
        )

    @staticmethod
    def _parse_page(response: httpx.Response, cursor: int) -> list[dict[str, Any]]:
        """Extract the `data` list from a search response."""
        try:
            payload = response.json()
        except ValueError as e:
            raise FatalFetchError(
                "Catalog response is not valid JSON",
                status_code=response.status_code,
                cursor=cursor,
            ) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise FatalFetchError(
                "Catalog response has no 'data' list",
                status_code=response.status_code,
                cursor=cursor,
            )
        return data
