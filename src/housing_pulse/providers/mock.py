"""Mock provider backed by bundled fixture markets."""

from __future__ import annotations

import asyncio
import logging

from housing_pulse.analytics.aggregate import build_market_stats, merge_rentals
from housing_pulse.cache.store import CacheStore
from housing_pulse.core.config import MockProviderConfig
from housing_pulse.core.models import (
    Capability,
    MarketStats,
    ProviderDescriptor,
    ProviderKind,
    SearchResults,
    TimeWindow,
)
from housing_pulse.parsing.csv_parser import MarketCsvParser
from housing_pulse.providers.base import DEFAULT_SEARCH_LIMIT, MarketIndex
from housing_pulse.providers.fixtures import render_wide_csv
from housing_pulse.providers.resolver import StatsResolver

logger = logging.getLogger(__name__)


class MockMarketProvider:
    """Always-configured provider serving fixture data.

    Parameters
    ----------
    config : MockProviderConfig
        ``latency_seconds`` simulates a slow backend on every fetch.
    cache : CacheStore | None
        Shared cache; ``None`` disables caching.
    """

    def __init__(
        self,
        config: MockProviderConfig,
        cache: CacheStore | None = None,
        parser: MarketCsvParser | None = None,
        lookback: TimeWindow = TimeWindow.ONE_YEAR,
    ) -> None:
        self._config = config
        self._parser = parser or MarketCsvParser()
        self._lookback = lookback
        self._index: MarketIndex | None = None
        self.resolver = StatsResolver(ProviderKind.MOCK.value, cache, config.cache_ttl_seconds)

    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=ProviderKind.MOCK,
            name="Mock Data",
            description="Bundled sample markets for development and demos",
            capabilities=frozenset(Capability),
            is_configured=self.is_configured,
        )

    def is_configured(self) -> bool:
        return True

    async def ready(self) -> None:
        return None

    async def get_stats(
        self, location_key: str, force_refresh: bool = False
    ) -> MarketStats | None:
        return await self.resolver.resolve(location_key, self._fetch, force_refresh)

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResults:
        return self._fixture_index().search(query, limit)

    async def list_markets(self) -> list[MarketStats]:
        return self._fixture_index().markets

    async def close(self) -> None:
        return None

    async def _fetch(self, location: str) -> MarketStats | None:
        if self._config.latency_seconds > 0:
            await asyncio.sleep(self._config.latency_seconds)
        market = self._fixture_index().find(location)
        if market is None:
            logger.info("Mock provider has no market for %r", location)
        return market

    def _fixture_index(self) -> MarketIndex:
        if self._index is None:
            homes = self._parser.parse(render_wide_csv())
            markets = build_market_stats(homes, self._lookback, ProviderKind.MOCK.value)
            rents = self._parser.parse(render_wide_csv(rentals=True))
            markets = merge_rentals(markets, rents.series_by_record, self._lookback)
            self._index = MarketIndex(markets)
            logger.debug("Built mock index with %d markets", len(markets))
        return self._index
