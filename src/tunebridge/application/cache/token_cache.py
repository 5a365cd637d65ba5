"""Process-wide access token cache with single-flight refresh."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from tunebridge.domain.entities import Platform

logger = logging.getLogger(__name__)

TokenLoader = Callable[[], Awaitable[tuple[str, float]]]
CacheKey = tuple[str, Platform]

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Cache entry with value and expiry metadata."""

    value: V
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        """Check if cache entry is expired."""
        return now >= self.created_at + self.ttl_seconds


@dataclass
class _InFlight:
    future: asyncio.Future[str]
    forced: bool


# Hey future me, this is the ONLY shared mutable state between conversions. Two rules:
# 1. All reads/writes of _entries and _inflight happen under _lock.
# 2. At most ONE loader runs per (user, platform). Everyone else arriving during that load
#    awaits the same future - that's what keeps a burst of parallel conversions from firing
#    N refresh calls (and Spotify rotating the refresh token N times).
# The in-flight slot is cleared on success AND failure, so a failed refresh never poisons the
# next attempt. Create ONE instance per process and inject it, never a module global.
class TokenCache:
    """In-memory access token cache keyed by (user_id, platform)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry[str]] = {}
        self._inflight: dict[CacheKey, _InFlight] = {}
        self._lock = asyncio.Lock()

    async def get_or_refresh(
        self,
        user_id: str,
        platform: Platform,
        loader: TokenLoader,
        *,
        bypass_cache: bool = False,
    ) -> str:
        """Return a cached token or load one, coalescing concurrent loads.

        Args:
            user_id: Token owner
            platform: Token platform
            loader: Coroutine factory returning (token, ttl_seconds). ttl <= 0 means
                "don't cache"
            bypass_cache: Ignore a cached entry (after a 401). Joins an in-flight load
                only if that load was forced too

        Returns:
            The access token
        """
        key = (user_id, Platform(platform))

        while True:
            async with self._lock:
                if not bypass_cache:
                    entry = self._entries.get(key)
                    if entry is not None and not entry.is_expired(self._clock()):
                        return entry.value

                inflight = self._inflight.get(key)
                if inflight is None:
                    inflight = _InFlight(
                        future=asyncio.get_running_loop().create_future(),
                        forced=bypass_cache,
                    )
                    self._inflight[key] = inflight
                    break

            # A plain load may still hand out the token that just got a 401, so forced
            # callers wait for it to settle and then start their own load
            if inflight.forced or not bypass_cache:
                return await asyncio.shield(inflight.future)
            try:
                await asyncio.shield(inflight.future)
            except Exception:
                pass

        return await self._run_loader(key, inflight, loader)

    async def _run_loader(
        self, key: CacheKey, inflight: _InFlight, loader: TokenLoader
    ) -> str:
        future = inflight.future
        try:
            token, ttl = await loader()
        except BaseException as e:
            async with self._lock:
                if self._inflight.get(key) is inflight:
                    del self._inflight[key]
            if isinstance(e, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(e)
                # Mark retrieved, nobody may be waiting on it
                future.exception()
            raise

        async with self._lock:
            if ttl > 0:
                self._entries[key] = CacheEntry(token, self._clock(), ttl)
            else:
                self._entries.pop(key, None)
            if self._inflight.get(key) is inflight:
                del self._inflight[key]
        future.set_result(token)
        return token

    async def invalidate(self, user_id: str, platform: Platform) -> None:
        """Drop the cached token (e.g. after the API answered 401)."""
        async with self._lock:
            if self._entries.pop((user_id, Platform(platform)), None) is not None:
                logger.debug("Invalidated cached %s token for user %s", platform, user_id)

    def __len__(self) -> int:
        return len(self._entries)
