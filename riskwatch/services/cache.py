"""
In-process TTL caches.

Caches provider results to cut churn on hot coordinates:
- Weather risk (per 2-dp coordinate, TTL 30 min)
- Crime risk (per 2-dp coordinate, TTL 60 min)
- Political risk (per 2-dp coordinate, TTL 120 min)
- Derived risk snapshot (per 3-dp coordinate, TTL 10 min)

Every cache is bounded (LRU eviction on top of TTL expiry). Reads may be
stale by design; writes go through a per-key asyncio lock so concurrent
subjects at the same coordinate trigger a single provider call.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Hashable, Optional, TypeVar

import structlog
from cachetools import TTLCache

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TTLStore:
    """Bounded TTL cache safe for concurrent async writers."""

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_entries: int = 50_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)
        self._key_locks: dict[Hashable, asyncio.Lock] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value or None on miss / expiry."""
        value = self._cache.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    async def set(self, key: Hashable, value: Any) -> None:
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        async with lock:
            self._cache[key] = value
        self._release(key, lock)

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[T]]) -> T:
        """
        Return the cached value, or run `loader` once and cache its result.

        Loader exceptions propagate and nothing is cached.
        """
        value = self.get(key)
        if value is not None:
            return value

        lock = self._key_locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                value = self._cache.get(key)
                if value is None:
                    value = await loader()
                    self._cache[key] = value
        finally:
            self._release(key, lock)
        return value

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        removed = len(self._cache.expire())
        if removed:
            logger.debug("cache_purged", cache=self.name, removed=removed)
        return removed

    def clear(self) -> None:
        self._cache.clear()
        self._key_locks.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._cache

    def _release(self, key: Hashable, lock: asyncio.Lock) -> None:
        if not lock.locked() and self._key_locks.get(key) is lock:
            self._key_locks.pop(key, None)


# ── Cache key builders ───────────────────────────────────────────────────


def coordinate_key(prefix: str, latitude: float, longitude: float, decimals: int = 2) -> str:
    return f"{prefix}:{latitude:.{decimals}f},{longitude:.{decimals}f}"


def weather_key(latitude: float, longitude: float) -> str:
    return coordinate_key("weather", latitude, longitude, 2)


def crime_key(latitude: float, longitude: float) -> str:
    return coordinate_key("crime", latitude, longitude, 2)


def political_key(latitude: float, longitude: float) -> str:
    return coordinate_key("political", latitude, longitude, 2)


def derived_risk_key(latitude: float, longitude: float) -> str:
    return coordinate_key("risk", latitude, longitude, 3)


# ── Cache TTLs ───────────────────────────────────────────────────────────

WEATHER_TTL = 1800      # 30 minutes
CRIME_TTL = 3600        # 60 minutes
POLITICAL_TTL = 7200    # 120 minutes
DERIVED_RISK_TTL = 600  # 10 minutes
