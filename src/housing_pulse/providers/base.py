"""Market data provider protocol and the in-memory market index.

Architecture
------------
Every data source sits behind the same consumer-facing protocol::

    Source (fixture / CSV / HTTP) → MarketCsvParser or adapter
        → build_market_stats → MarketStats → StatsResolver → Consumer

- **MarketDataProvider** is what the fallback chain, API and CLI depend
  on. Nothing downstream inspects concrete provider types.

- **DatasetManager** is the upload and reset surface of providers that
  hold a replaceable dataset. ``ProviderFactory.dataset_manager`` hands it
  out by ``ProviderKind``.

- **StatsResolver** (``providers.resolver``) owns the cache and
  single-flight behavior. Providers only supply a fetch coroutine.

- **MarketIndex** answers location lookups and searches over a list of
  already-built ``MarketStats``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from housing_pulse.core.models import (
    DataSource,
    MarketDataset,
    MarketRecord,
    MarketStats,
    ProviderDescriptor,
    SearchResults,
    UploadResult,
    market_key,
    normalize_key,
)

MIN_QUERY_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 100


@runtime_checkable
class MarketDataProvider(Protocol):
    """Consumer-facing interface for market statistics."""

    def descriptor(self) -> ProviderDescriptor: ...

    def is_configured(self) -> bool:
        """Whether the provider can currently answer requests."""
        ...

    async def ready(self) -> None:
        """Wait for any background loading to finish."""
        ...

    async def get_stats(
        self, location_key: str, force_refresh: bool = False
    ) -> MarketStats | None:
        """Stats for one location, or None if the provider has no such market.

        Raises
        ------
        ProviderError
            On fetch failure. Callers fall back to the next tier.
        """
        ...

    async def search(
        self, query: str, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> SearchResults: ...

    async def list_markets(self) -> list[MarketStats]: ...

    async def close(self) -> None: ...


@runtime_checkable
class DatasetManager(Protocol):
    """Upload and reset surface of a provider backed by one dataset."""

    @property
    def data_source(self) -> DataSource | None: ...

    @property
    def filename(self) -> str | None: ...

    @property
    def dataset(self) -> MarketDataset | None: ...

    async def upload(self, text: str, filename: str) -> UploadResult:
        """Replace the dataset; failures are reported in the result, not raised."""
        ...

    async def reset_to_default(self) -> MarketDataset:
        """Reload the configured default dataset.

        Raises
        ------
        ProviderNotConfiguredError
            If no default dataset can be loaded.
        """
        ...


def lookup_keys(record: MarketRecord) -> set[str]:
    """Every normalized location string that identifies ``record``."""
    keys = {
        record.id,
        record.label,
        f"{record.city}, {record.state}",
        f"{record.city}-{record.state}",
        market_key(record.label, record.state),
    }
    if record.zip_code:
        keys.add(record.zip_code)
    return {normalize_key(k) for k in keys if k}


def search_records(
    records: list[MarketRecord], query: str, limit: int = DEFAULT_SEARCH_LIMIT
) -> SearchResults:
    """Substring search over city, state, label and zip code.

    Queries shorter than two characters return nothing.
    """
    q = normalize_key(query)
    if len(q) < MIN_QUERY_LENGTH:
        return SearchResults(total=0, items=[])

    hits = [
        r
        for r in records
        if q in r.city.lower()
        or q in r.state.lower()
        or q in r.label.lower()
        or (r.zip_code is not None and q in r.zip_code)
    ]
    return SearchResults(total=len(hits), items=hits[:limit])


class MarketIndex:
    """Location lookup table over a list of markets.

    The first market claiming a lookup key wins, so a zip code that equals
    another market's id does not shadow it.
    """

    def __init__(self, markets: list[MarketStats]) -> None:
        self._markets = list(markets)
        self._by_key: dict[str, MarketStats] = {}
        for market in self._markets:
            for key in lookup_keys(market.record):
                self._by_key.setdefault(key, market)

    def __len__(self) -> int:
        return len(self._markets)

    @property
    def markets(self) -> list[MarketStats]:
        return list(self._markets)

    def find(self, location: str) -> MarketStats | None:
        return self._by_key.get(normalize_key(location))

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResults:
        return search_records([m.record for m in self._markets], query, limit)
