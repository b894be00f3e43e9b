"""
Rate Limiter for Catalog API Calls.

Hey future me – token bucket plus adaptive backoff on 429.

ALGORITHM: Token Bucket
- Bucket holds max_tokens
- Tokens refill at refill_rate/sec
- Every request consumes 1 token
- Empty bucket: wait until a token is available

ADAPTIVE BACKOFF on 429:
- First 429: initial_backoff_seconds (1s by default)
- Second 429: 2s
- Third 429: 4s (exponential, capped at max_backoff_seconds)
- A successful request resets the backoff

The limiter does NOT count retries. How many 429s in a row are acceptable is
the client's decision (see EncoreCatalogClient.fetch_page).

USAGE:
    limiter = RateLimiter.for_catalog(settings.catalog)

    async with limiter:
        response = await client.post(url, json=body)

    # On 429:
    await limiter.handle_rate_limit_response(retry_after=header_value)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chartmirror.config.settings import CatalogSettings

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter."""

    max_tokens: int = 5  # Bucket size
    refill_rate: float = 2.0  # Tokens per second
    max_backoff_seconds: float = 60.0  # Cap for any single 429 wait
    initial_backoff_seconds: float = 1.0  # First 429 wait
    backoff_multiplier: float = 2.0  # Exponential backoff factor


@dataclass
class RateLimiter:
    """Token Bucket Rate Limiter with adaptive backoff.

    Use it as an async context manager for automatic token handling.

    Attributes:
        config: Rate limiter configuration
        _tokens: Current available tokens
        _last_refill: Last time tokens were refilled
        _current_backoff: Backoff used for the next 429 (resets on success)
        _lock: Async lock guarding bucket state
    """

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        """Initialize tokens to max capacity."""
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_catalog(cls, settings: "CatalogSettings") -> "RateLimiter":
        """Create a rate limiter from catalog settings."""
        return cls(
            config=RateLimiterConfig(
                max_tokens=settings.burst,
                refill_rate=settings.requests_per_second,
                max_backoff_seconds=settings.max_backoff_seconds,
                initial_backoff_seconds=settings.initial_backoff_seconds,
                backoff_multiplier=settings.backoff_multiplier,
            ),
            name="catalog",
        )

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self._last_refill

        new_tokens = elapsed * self.config.refill_rate
        self._tokens = min(self.config.max_tokens, self._tokens + new_tokens)
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if necessary."""
        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    f"RateLimiter[{self.name}]: No tokens available, "
                    f"waiting {wait_time:.2f}s"
                )

                # Release lock while waiting
                self._lock.release()
                try:
                    await asyncio.sleep(wait_time)
                finally:
                    await self._lock.acquire()

                self._refill_tokens()

            self._tokens -= 1.0
            logger.debug(
                f"RateLimiter[{self.name}]: Token acquired, "
                f"{self._tokens:.1f} remaining"
            )

    def next_backoff(self, retry_after: float | None = None) -> float:
        """Wait time the next 429 would cause (Retry-After wins, always capped)."""
        wait_time = float(retry_after) if retry_after is not None else self._current_backoff
        return min(max(wait_time, 0.0), self.config.max_backoff_seconds)

    async def handle_rate_limit_response(self, retry_after: float | None = None) -> float:
        """Handle a 429 rate limit response with adaptive backoff.

        Args:
            retry_after: Retry-After header from API response (seconds)

        Returns:
            The actual wait time used
        """
        async with self._lock:
            wait_time = self.next_backoff(retry_after)

            logger.debug(
                f"RateLimiter[{self.name}]: 429 - waiting {wait_time:.1f}s "
                f"(backoff level: {self._current_backoff:.1f}s)"
            )

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )

            # Empty the bucket so the retry also waits for a fresh token
            self._tokens = 0.0
            self._last_refill = time.monotonic()

        # Wait outside lock
        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        """Enter async context - acquire token."""
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        """Exit async context."""
        pass

    @property
    def current_backoff(self) -> float:
        """Backoff the next 429 would use (for debugging and tests)."""
        return self._current_backoff

    @property
    def available_tokens(self) -> float:
        """Get current available tokens (for debugging)."""
        self._refill_tokens()
        return self._tokens


__all__ = ["RateLimiter", "RateLimiterConfig"]
