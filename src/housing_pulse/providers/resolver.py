"""Cache + single-flight orchestration shared by every provider.

Each provider composes one ``StatsResolver`` and hands it a fetch
coroutine; the resolver decides whether the fetch runs at all.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from housing_pulse.cache.store import CacheStore
from housing_pulse.core.exceptions import StorageError
from housing_pulse.core.models import MarketStats, normalize_key
from housing_pulse.providers.singleflight import SingleFlight

logger = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[MarketStats | None]]


@dataclass
class ResolverCounters:
    hits: int = 0
    misses: int = 0
    fetches: int = 0


class StatsResolver:
    """Resolve a location through cache, then a single shared fetch.

    Parameters
    ----------
    provider_id : str
        Namespace for cache keys (``stats:<provider_id>:<location>``).
    cache : CacheStore | None
        Shared cache. ``None`` disables caching.
    ttl_seconds : float | None
        TTL for written entries; ``None`` never expires.
    """

    def __init__(
        self,
        provider_id: str,
        cache: CacheStore | None,
        ttl_seconds: float | None,
    ) -> None:
        self._provider_id = provider_id
        self._cache = cache
        self._ttl = ttl_seconds
        self._flight: SingleFlight[MarketStats | None] = SingleFlight()
        self.counters = ResolverCounters()

    @property
    def prefix(self) -> str:
        return f"stats:{self._provider_id}:"

    def cache_key(self, location: str) -> str:
        return self.prefix + normalize_key(location)

    @property
    def in_flight(self) -> int:
        return len(self._flight)

    async def resolve(
        self,
        location: str,
        fetch: Fetch,
        force_refresh: bool = False,
    ) -> MarketStats | None:
        """Return cached stats or run ``fetch`` once for all concurrent callers.

        ``force_refresh`` skips the cache read but still joins an in-flight
        fetch for the same key.
        """
        key = self.cache_key(location)
        if not force_refresh:
            cached = await self._read(key)
            if cached is not None:
                self.counters.hits += 1
                return cached
        self.counters.misses += 1
        return await self._flight.do(key, lambda: self._fetch_and_store(key, location, fetch))

    async def invalidate(self) -> int:
        """Drop every cached entry of this provider."""
        if self._cache is None:
            return 0
        try:
            removed = await self._cache.delete_prefix(self.prefix)
        except StorageError as e:
            logger.warning("Failed to invalidate %s cache: %s", self._provider_id, e)
            return 0
        logger.info("Invalidated %d cached %s entries", removed, self._provider_id)
        return removed

    async def _fetch_and_store(
        self, key: str, location: str, fetch: Fetch
    ) -> MarketStats | None:
        self.counters.fetches += 1
        stats = await fetch(location)
        if stats is not None:
            await self._write(key, stats)
        return stats

    async def _read(self, key: str) -> MarketStats | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key, MarketStats)
        except StorageError as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            return None

    async def _write(self, key: str, stats: MarketStats) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, stats, self._ttl)
        except StorageError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
