"""Token bucket rate limiting for outgoing Spotify and YouTube API calls.

Hey future me - one limiter per platform, shared by every client instance in
the process. A conversion of a 500 track playlist fires ~1000 YouTube calls
(search + insert per track), without throttling we'd hit 429s within seconds.

Algorithm:
- The bucket holds up to max_tokens, refilled at refill_rate tokens/second
- Every request consumes one token, an empty bucket means waiting
- A 429 drains the bucket and waits Retry-After (or an exponential backoff
  that doubles on every consecutive 429 and resets after a success)

Usage:
    limiter = get_youtube_limiter()
    async with limiter:
        response = await client.get(url)

    # After a 429:
    await limiter.handle_rate_limit_response(retry_after)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for a rate limiter.

    max_backoff_seconds must stay high: Spotify sends Retry-After values of
    several minutes under heavy load. Capping lower just earns the next 429.
    """

    max_tokens: int = 10
    refill_rate: float = 2.0  # tokens per second
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


@dataclass
class RateLimiter:
    """Token bucket rate limiter with adaptive 429 backoff."""

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)
    name: str = "default"

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _current_backoff: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)
        self._current_backoff = self.config.initial_backoff_seconds

    @classmethod
    def for_spotify(cls) -> "RateLimiter":
        """Spotify allows roughly 180 requests/minute with short bursts.

        We stay conservative with 2 req/sec sustained and a burst of 10.
        """
        return cls(
            config=RateLimiterConfig(
                max_tokens=10,
                refill_rate=2.0,
                max_backoff_seconds=600.0,
                initial_backoff_seconds=1.0,
            ),
            name="spotify",
        )

    @classmethod
    def for_youtube(cls) -> "RateLimiter":
        """YouTube Data API is quota based (search costs 100 units, inserts 50).

        Per-second throttling mostly protects against bursts of parallel
        conversions, quota exhaustion surfaces as 403 quotaExceeded instead.
        """
        return cls(
            config=RateLimiterConfig(
                max_tokens=5,
                refill_rate=3.0,
                max_backoff_seconds=120.0,
                initial_backoff_seconds=1.0,
            ),
            name="youtube",
        )

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(
            float(self.config.max_tokens),
            self._tokens + elapsed * self.config.refill_rate,
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            self._refill_tokens()
            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    "RateLimiter[%s]: bucket empty, waiting %.2fs", self.name, wait_time
                )
                # Other waiters queue on the lock, so sleeping while holding it
                # keeps acquisition FIFO
                await asyncio.sleep(wait_time)
                self._refill_tokens()
            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Back off after a 429 response.

        Args:
            retry_after: Value of the Retry-After header in seconds, if sent

        Returns:
            The wait time actually used
        """
        async with self._lock:
            wait_time = (
                float(retry_after) if retry_after is not None else self._current_backoff
            )
            wait_time = min(wait_time, self.config.max_backoff_seconds)

            logger.warning(
                "RateLimiter[%s]: 429 received, waiting %.1fs (backoff level %.1fs)",
                self.name,
                wait_time,
                self._current_backoff,
            )

            self._current_backoff = min(
                self._current_backoff * self.config.backoff_multiplier,
                self.config.max_backoff_seconds,
            )
            self._tokens = 0.0

        await asyncio.sleep(wait_time)
        return wait_time

    def reset_backoff(self) -> None:
        """Reset backoff after a successful request."""
        self._current_backoff = self.config.initial_backoff_seconds

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self.reset_backoff()

    @property
    def available_tokens(self) -> float:
        """Currently available tokens (debugging aid)."""
        self._refill_tokens()
        return self._tokens

    @property
    def current_backoff(self) -> float:
        """Wait used for the next 429 without Retry-After."""
        return self._current_backoff


# One limiter per platform, shared across all client instances
_spotify_limiter: RateLimiter | None = None
_youtube_limiter: RateLimiter | None = None


def get_spotify_limiter() -> RateLimiter:
    """Get the process-wide Spotify rate limiter."""
    global _spotify_limiter
    if _spotify_limiter is None:
        _spotify_limiter = RateLimiter.for_spotify()
    return _spotify_limiter


def get_youtube_limiter() -> RateLimiter:
    """Get the process-wide YouTube rate limiter."""
    global _youtube_limiter
    if _youtube_limiter is None:
        _youtube_limiter = RateLimiter.for_youtube()
    return _youtube_limiter


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "get_spotify_limiter",
    "get_youtube_limiter",
]
