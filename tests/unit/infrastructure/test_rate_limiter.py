"""Tests for the token bucket rate limiter."""

import pytest

from chartmirror.config.settings import CatalogSettings
from chartmirror.infrastructure.rate_limiter import RateLimiter, RateLimiterConfig


@pytest.fixture
def limiter() -> RateLimiter:
    """Limiter whose waits are all zero, so tests never actually sleep."""
    return RateLimiter(
        config=RateLimiterConfig(
            max_tokens=3,
            refill_rate=10_000.0,
            initial_backoff_seconds=0.0,
            max_backoff_seconds=0.0,
        ),
        name="test",
    )


class TestRateLimiterTokens:
    """Token bucket behaviour."""

    def test_starts_full(self, limiter: RateLimiter) -> None:
        assert limiter.available_tokens == pytest.approx(3.0)

    async def test_acquire_consumes_a_token(self) -> None:
        limiter = RateLimiter(config=RateLimiterConfig(max_tokens=3, refill_rate=0.001))

        await limiter.acquire()

        assert limiter.available_tokens == pytest.approx(2.0, abs=0.01)

    async def test_context_manager_acquires(self) -> None:
        limiter = RateLimiter(config=RateLimiterConfig(max_tokens=2, refill_rate=0.001))

        async with limiter:
            pass

        assert limiter.available_tokens == pytest.approx(1.0, abs=0.01)

    async def test_waits_when_bucket_is_empty(self, limiter: RateLimiter) -> None:
        """Drained bucket refills instead of failing."""
        for _ in range(5):
            await limiter.acquire()

        assert limiter.available_tokens <= 3.0


class TestRateLimiterBackoff:
    """Adaptive backoff on 429."""

    def test_next_backoff_uses_current_level(self) -> None:
        limiter = RateLimiter(config=RateLimiterConfig(initial_backoff_seconds=1.0))

        assert limiter.next_backoff() == 1.0

    def test_retry_after_wins_but_is_capped(self) -> None:
        limiter = RateLimiter(
            config=RateLimiterConfig(initial_backoff_seconds=1.0, max_backoff_seconds=10.0)
        )

        assert limiter.next_backoff(4.0) == 4.0
        assert limiter.next_backoff(3600.0) == 10.0
        assert limiter.next_backoff(-5.0) == 0.0

    async def test_backoff_escalates_and_resets(self, mocker) -> None:
        """1s -> 2s -> 4s, capped, back to 1s after a success."""
        sleep = mocker.patch(
            "chartmirror.infrastructure.rate_limiter.asyncio.sleep", new=mocker.AsyncMock()
        )
        limiter = RateLimiter(
            config=RateLimiterConfig(
                initial_backoff_seconds=1.0, backoff_multiplier=2.0, max_backoff_seconds=3.0
            )
        )

        waits = [await limiter.handle_rate_limit_response() for _ in range(3)]

        assert waits == [1.0, 2.0, 3.0]
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 3.0]
        assert limiter.current_backoff == 3.0

        limiter.reset_backoff()
        assert limiter.current_backoff == 1.0

    async def test_rate_limit_empties_bucket(self, limiter: RateLimiter) -> None:
        await limiter.handle_rate_limit_response()

        # Raw field: available_tokens would refill first
        assert limiter._tokens == 0.0

    def test_for_catalog_uses_settings(self) -> None:
        settings = CatalogSettings(
            requests_per_second=4.0,
            burst=8,
            initial_backoff_seconds=0.5,
            backoff_multiplier=3.0,
            max_backoff_seconds=20.0,
        )

        limiter = RateLimiter.for_catalog(settings)

        assert limiter.name == "catalog"
        assert limiter.config.max_tokens == 8
        assert limiter.config.refill_rate == 4.0
        assert limiter.config.backoff_multiplier == 3.0
        assert limiter.current_backoff == 0.5
