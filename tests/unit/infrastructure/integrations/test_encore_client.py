"""Tests for the Encore catalog search client."""

import json
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
from pytest_httpx import HTTPXMock

from chartmirror.config.settings import CatalogSettings
from chartmirror.domain.exceptions import FatalFetchError, RateLimitExceededError
from chartmirror.infrastructure.integrations.encore_client import (
    EncoreCatalogClient,
    build_search_body,
    parse_retry_after,
)

AFTER = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class Responder:
    """MockTransport handler that replays a script of responses and logs requests."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


def _client(settings: CatalogSettings, responder: Responder) -> EncoreCatalogClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(responder))
    return EncoreCatalogClient(settings, http_client=http_client)


class TestBuildSearchBody:
    """Request body of the advanced search."""

    def test_paging_fields(self) -> None:
        body = build_search_body(AFTER, 41872, 250)

        assert body["modifiedAfter"] == "2024-05-01T12:00:00.000Z"
        assert body["chartIdAfter"] == 41872
        assert body["per_page"] == 250
        assert body["source"] == "website"

    def test_every_filter_is_open(self) -> None:
        """Text filters are empty, everything else is null or ""."""
        body = build_search_body(AFTER, 0, 250)

        for name in ("name", "artist", "album", "genre", "year", "charter"):
            assert body[name] == {"value": "", "exact": False, "exclude": False}
        for name in ("instrument", "difficulty", "drumType", "minLength", "maxYear", "modchart"):
            assert body[name] is None
        assert body["hash"] == ""
        assert body["trackHash"] == ""
        assert body["hasLyrics"] is None

    def test_text_filters_are_independent_copies(self) -> None:
        body = build_search_body(AFTER, 0, 250)
        body["name"]["value"] = "changed"

        assert build_search_body(AFTER, 0, 250)["name"]["value"] == ""


class TestParseRetryAfter:
    """Retry-After header parsing."""

    @pytest.mark.parametrize(
        ("header", "expected"),
        [("3", 3.0), ("0.5", 0.5), ("-1", None), ("Wed, 21 Oct 2015 07:28:00 GMT", None)],
    )
    def test_values(self, header, expected) -> None:
        response = httpx.Response(429, headers={"Retry-After": header})
        assert parse_retry_after(response) == expected

    def test_missing_header(self) -> None:
        assert parse_retry_after(httpx.Response(429)) is None


class TestEncoreCatalogClientFetchPage:
    """Status handling of fetch_page()."""

    async def test_success_returns_data(self, fast_catalog_settings) -> None:
        records = [{"chartId": 1, "groupId": 5, "modifiedTime": "2024-05-01T12:00:00.000Z"}]
        responder = Responder(httpx.Response(200, json={"found": 1, "data": records}))
        client = _client(fast_catalog_settings, responder)

        page = await client.fetch_page(AFTER, 0)

        assert page == records
        request = responder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://catalog.test/search/advanced"
        assert responder.bodies[0]["chartIdAfter"] == 0
        assert responder.bodies[0]["per_page"] == fast_catalog_settings.per_page

    async def test_empty_page(self, fast_catalog_settings) -> None:
        client = _client(fast_catalog_settings, Responder(httpx.Response(200, json={"data": []})))

        assert await client.fetch_page(AFTER, 99) == []

    async def test_429_then_success_is_retried(self, fast_catalog_settings) -> None:
        """A single 429 is absorbed; the same request is sent again."""
        responder = Responder(
            httpx.Response(429),
            httpx.Response(200, json={"data": [{"chartId": 3}]}),
        )
        client = _client(fast_catalog_settings, responder)

        page = await client.fetch_page(AFTER, 2)

        assert page == [{"chartId": 3}]
        assert len(responder.requests) == 2
        assert responder.bodies[0] == responder.bodies[1]

    async def test_429_retries_are_bounded(self, fast_catalog_settings) -> None:
        """max_retries=2 means 3 attempts, then RateLimitExceededError."""
        responder = Responder(httpx.Response(429))
        client = _client(fast_catalog_settings, responder)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await client.fetch_page(AFTER, 7)

        assert len(responder.requests) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.cursor == 7
        assert exc_info.value.status_code == 429
        assert isinstance(exc_info.value, FatalFetchError)

    async def test_retry_after_header_is_used(self, fast_catalog_settings, mocker) -> None:
        """A numeric Retry-After decides the wait (capped by max_backoff_seconds)."""
        responder = Responder(
            httpx.Response(429, headers={"Retry-After": "12"}),
            httpx.Response(200, json={"data": []}),
        )
        client = _client(fast_catalog_settings, responder)
        handle = mocker.patch.object(
            client._rate_limiter, "handle_rate_limit_response", return_value=0.0
        )

        await client.fetch_page(AFTER, 0)

        handle.assert_awaited_once_with(12.0)

    async def test_server_error_is_fatal(self, fast_catalog_settings) -> None:
        """5xx is not retried here and never becomes an empty page."""
        responder = Responder(httpx.Response(503))
        client = _client(fast_catalog_settings, responder)

        with pytest.raises(FatalFetchError) as exc_info:
            await client.fetch_page(AFTER, 11)

        assert len(responder.requests) == 1
        assert exc_info.value.status_code == 503
        assert exc_info.value.cursor == 11
        assert not isinstance(exc_info.value, RateLimitExceededError)

    async def test_client_error_is_fatal(self, fast_catalog_settings) -> None:
        client = _client(fast_catalog_settings, Responder(httpx.Response(400)))

        with pytest.raises(FatalFetchError) as exc_info:
            await client.fetch_page(AFTER, 0)

        assert exc_info.value.status_code == 400

    async def test_network_error_is_fatal(self, fast_catalog_settings) -> None:
        responder = Responder(httpx.ConnectError("connection refused"))
        client = _client(fast_catalog_settings, responder)

        with pytest.raises(FatalFetchError) as exc_info:
            await client.fetch_page(AFTER, 0)

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_invalid_json_is_fatal(self, fast_catalog_settings) -> None:
        responder = Responder(httpx.Response(200, content=b"<html>maintenance</html>"))
        client = _client(fast_catalog_settings, responder)

        with pytest.raises(FatalFetchError, match="not valid JSON"):
            await client.fetch_page(AFTER, 0)

    async def test_missing_data_list_is_fatal(self, fast_catalog_settings) -> None:
        client = _client(
            fast_catalog_settings, Responder(httpx.Response(200, json={"error": "oops"}))
        )

        with pytest.raises(FatalFetchError, match="no 'data' list"):
            await client.fetch_page(AFTER, 0)


class TestEncoreCatalogClientLifecycle:
    """Owned vs injected httpx clients."""

    async def test_injected_client_is_not_closed(self, fast_catalog_settings) -> None:
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []}))
        )

        async with EncoreCatalogClient(fast_catalog_settings, http_client=http_client):
            pass

        assert not http_client.is_closed
        await http_client.aclose()

    async def test_owned_client_is_created_lazily_and_closed(self, fast_catalog_settings) -> None:
        client = EncoreCatalogClient(fast_catalog_settings)
        assert client._client is None

        http_client = await client._get_client()
        assert http_client.headers["User-Agent"] == fast_catalog_settings.user_agent

        await client.close()
        assert http_client.is_closed
        assert client._client is None


class TestEncoreCatalogClientOwnedTransport:
    """The owned httpx client end to end, intercepted by pytest-httpx."""

    async def test_request_headers_and_body(
        self, fast_catalog_settings, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            method="POST",
            url="https://catalog.test/search/advanced",
            json={"found": 1, "data": [{"chartId": 9, "groupId": 3}]},
        )

        async with EncoreCatalogClient(fast_catalog_settings) as client:
            page = await client.fetch_page(AFTER, 8)

        assert page == [{"chartId": 9, "groupId": 3}]
        request = httpx_mock.get_request()
        assert request.headers["User-Agent"] == fast_catalog_settings.user_agent
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content)["chartIdAfter"] == 8

    async def test_timeout_is_fatal(self, fast_catalog_settings, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

        async with EncoreCatalogClient(fast_catalog_settings) as client:
            with pytest.raises(FatalFetchError, match="Network error"):
                await client.fetch_page(AFTER, 0)
