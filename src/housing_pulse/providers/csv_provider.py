"""Bulk time-series (CSV) provider.

Two modes:

- **bulk** (default): one dataset holding every market is loaded in a
  background task, from the cache (``dataset:csv``) if an earlier load or
  upload persisted one, else from the configured default files. Users can
  replace it by uploading a CSV.
- **split**: markets are fetched on demand from per-market files laid out
  by ``parsing.splitter``::

      <market_data_url>/zhvi/<market-key>.csv
      <market_data_url>/zori/<market-key>.csv
      <market_data_url>/markets-index.json

Sources may be filesystem paths or http(s) URLs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

import httpx

from housing_pulse.analytics.aggregate import build_market_stats, merge_rentals
from housing_pulse.cache.store import CacheStore
from housing_pulse.core.config import CsvProviderConfig
from housing_pulse.core.exceptions import (
    ParsingError,
    ProviderError,
    ProviderNotConfiguredError,
    StorageError,
    TransientFetchError,
    UnsupportedCapabilityError,
)
from housing_pulse.core.models import (
    Capability,
    DataSource,
    MarketDataset,
    MarketRecord,
    MarketStats,
    ProviderDescriptor,
    ProviderKind,
    SearchResults,
    TimeWindow,
    UploadResult,
    market_key,
    normalize_key,
)
from housing_pulse.parsing.csv_parser import MarketCsvParser
from housing_pulse.parsing.splitter import INDEX_FILENAME, MarketIndexEntry, load_market_index
from housing_pulse.providers.base import DEFAULT_SEARCH_LIMIT, MarketIndex, search_records
from housing_pulse.providers.resolver import StatsResolver

logger = logging.getLogger(__name__)

DATASET_KEY = "dataset:csv"


@dataclass
class LoadProgress:
    percent: int = 0
    message: str = ""


def _is_url(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def _source_name(location: str) -> str:
    if _is_url(location):
        return Path(urlparse(location).path).name or location
    return Path(location).name


class CsvMarketProvider:
    """Provider over a bulk wide/simple CSV dataset or split market files.

    Parameters
    ----------
    config : CsvProviderConfig
        Default sources, split mode and request timeout.
    cache : CacheStore | None
        Holds the persisted dataset and per-location stats.
    parser : MarketCsvParser | None
        Parser with the configured record cap.
    lookback : TimeWindow
        Window used for percent-change calculation.
    """

    def __init__(
        self,
        config: CsvProviderConfig,
        cache: CacheStore | None = None,
        parser: MarketCsvParser | None = None,
        lookback: TimeWindow = TimeWindow.ONE_YEAR,
    ) -> None:
        self._config = config
        self._cache = cache
        self._parser = parser or MarketCsvParser()
        self._lookback = lookback
        self._dataset: MarketDataset | None = None
        self._index = MarketIndex([])
        self._split_index: list[MarketIndexEntry] | None = None
        self._load_task: asyncio.Task[None] | None = None
        self.progress = LoadProgress()
        self.resolver = StatsResolver(ProviderKind.CSV.value, cache, config.cache_ttl_seconds)

    # --- Descriptor & State ---

    def descriptor(self) -> ProviderDescriptor:
        if self._config.split_mode:
            capabilities = frozenset({Capability.SEARCH, Capability.DETAILS})
        else:
            capabilities = frozenset(Capability)
        return ProviderDescriptor(
            id=ProviderKind.CSV,
            name="CSV File",
            description="Historical home values from a bulk time-series CSV",
            capabilities=capabilities,
            is_configured=self.is_configured,
        )

    def is_configured(self) -> bool:
        return self._config.split_mode or len(self._index) > 0

    @property
    def data_source(self) -> DataSource | None:
        return self._dataset.source if self._dataset is not None else None

    @property
    def filename(self) -> str | None:
        return self._dataset.filename if self._dataset is not None else None

    @property
    def dataset(self) -> MarketDataset | None:
        return self._dataset

    # --- Loading ---

    def ready(self) -> asyncio.Future[None]:
        """Awaitable that resolves once the initial dataset load has finished.

        The load starts on first call. A failed load leaves the provider
        unconfigured rather than raising.
        """
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._initial_load())
        return asyncio.shield(self._load_task)

    async def _initial_load(self) -> None:
        if self._config.split_mode:
            self._set_progress(100, "Split mode: markets load on demand")
            return

        self._set_progress(0, "Loading cached dataset")
        cached = await self._read_cached_dataset()
        if cached is not None and cached.markets:
            self._install(cached)
            self._set_progress(100, f"Loaded {len(cached.markets)} cached markets")
            return

        if not self._config.default_dataset:
            logger.info("No default dataset configured; waiting for an upload")
            self._set_progress(100, "No dataset loaded")
            return

        try:
            await self._load_default()
        except (ProviderError, ParsingError) as e:
            logger.error("Failed to load default dataset: %s", e)
            self._set_progress(100, "Failed to load default dataset")

    async def _load_default(self) -> MarketDataset:
        source = self._config.default_dataset
        if not source:
            raise ProviderNotConfiguredError("No default dataset configured")

        self._set_progress(10, f"Fetching {_source_name(source)}")
        text = await self._read_source(source)
        if text is None:
            raise ProviderNotConfiguredError(
                f"Default dataset not found: {source}",
                context={"source": source},
            )

        self._set_progress(40, "Parsing home values")
        result = await self._parser.aparse(text)
        markets = build_market_stats(result, self._lookback, ProviderKind.CSV.value)
        if not markets:
            raise ParsingError(
                "No valid market data found in default dataset",
                context={"source": source, "diagnostics": len(result.diagnostics)},
            )

        if self._config.default_rentals:
            self._set_progress(70, "Merging rental data")
            markets = await self._with_rentals(markets, self._config.default_rentals)

        dataset = MarketDataset(
            filename=_source_name(source),
            source=DataSource.DEFAULT,
            markets=markets,
            loaded_at=datetime.now(timezone.utc),
        )
        await self._persist(dataset)
        self._install(dataset)
        self._set_progress(100, f"Loaded {len(markets)} markets")
        logger.info("Loaded default dataset %s: %d markets", dataset.filename, len(markets))
        return dataset

    async def _with_rentals(self, markets: list[MarketStats], source: str) -> list[MarketStats]:
        """Merge rentals from ``source``; failures keep the home values only."""
        try:
            text = await self._read_source(source)
            if text is None:
                logger.info("No rental data at %s", source)
                return markets
            rents = await self._parser.aparse(text)
        except (TransientFetchError, ParsingError) as e:
            logger.warning("Skipping rental data from %s: %s", source, e)
            return markets
        return merge_rentals(markets, rents.series_by_record, self._lookback)

    def _install(self, dataset: MarketDataset) -> None:
        self._dataset = dataset
        self._index = MarketIndex(dataset.markets)

    def _set_progress(self, percent: int, message: str) -> None:
        self.progress = LoadProgress(percent, message)
        logger.debug("CSV load %d%%: %s", percent, message)

    # --- Dataset Management ---

    async def upload(self, text: str, filename: str) -> UploadResult:
        """Replace the active dataset with an uploaded CSV document.

        Rejections (unrecognized format, no usable rows) leave the current
        dataset untouched and are reported in the result, not raised.
        """
        await self.ready()
        try:
            result = await self._parser.aparse(text)
        except ParsingError as e:
            logger.error("Rejected upload %s: %s", filename, e)
            return UploadResult(success=False, error=str(e))

        markets = build_market_stats(result, self._lookback, ProviderKind.CSV.value)
        if not markets:
            logger.error("Rejected upload %s: no valid market data", filename)
            return UploadResult(success=False, error="No valid market data found in CSV file")

        dataset = MarketDataset(
            filename=filename,
            source=DataSource.USER_UPLOAD,
            markets=markets,
            loaded_at=datetime.now(timezone.utc),
        )
        await self._persist(dataset)
        self._install(dataset)
        await self.resolver.invalidate()
        logger.info(
            "Uploaded %s: %d markets, %d rows skipped",
            filename, len(markets), len(result.diagnostics),
        )
        return UploadResult(success=True, markets=len(markets))

    async def reset_to_default(self) -> MarketDataset:
        """Drop any uploaded data and reload the default dataset."""
        await self.ready()
        await self.clear_data()
        return await self._load_default()

    async def clear_data(self) -> None:
        """Forget the active dataset and every cached CSV result."""
        self._dataset = None
        self._index = MarketIndex([])
        self._split_index = None
        if self._cache is not None:
            try:
                await self._cache.delete(DATASET_KEY)
            except StorageError as e:
                logger.warning("Failed to delete cached dataset: %s", e)
        await self.resolver.invalidate()
        self._set_progress(0, "Data cleared")

    async def _read_cached_dataset(self) -> MarketDataset | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(DATASET_KEY, MarketDataset)
        except StorageError as e:
            logger.warning("Cached dataset unavailable: %s", e)
            return None

    async def _persist(self, dataset: MarketDataset) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(DATASET_KEY, dataset, None)
        except StorageError as e:
            logger.warning("Failed to persist dataset %s: %s", dataset.filename, e)

    # --- Provider Operations ---

    async def get_stats(
        self, location_key: str, force_refresh: bool = False
    ) -> MarketStats | None:
        await self.ready()
        return await self.resolver.resolve(location_key, self._fetch, force_refresh)

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResults:
        await self.ready()
        if len(self._index) > 0:
            return self._index.search(query, limit)
        if self._config.split_mode:
            entries = await self._market_index()
            records = [
                MarketRecord(id=e.id, label=e.name, city=e.city, state=e.state)
                for e in entries
                if e.city and e.state
            ]
            return search_records(records, query, limit)
        return SearchResults(total=0, items=[])

    async def list_markets(self) -> list[MarketStats]:
        await self.ready()
        if len(self._index) > 0:
            return self._index.markets
        if self._config.split_mode:
            raise UnsupportedCapabilityError(
                "Bulk stats are not available in split mode",
                context={"provider": ProviderKind.CSV.value},
            )
        return []

    async def close(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            await asyncio.gather(self._load_task, return_exceptions=True)

    async def _fetch(self, location: str) -> MarketStats | None:
        market = self._index.find(location)
        if market is not None:
            return market.model_copy(update={"resolved_at": datetime.now(timezone.utc)})
        if self._config.split_mode:
            return await self._fetch_split(location)
        if len(self._index) == 0:
            raise ProviderNotConfiguredError(
                "No CSV dataset loaded", context={"location": location}
            )
        logger.info("No CSV market matches %r", location)
        return None

    # --- Split Mode ---

    async def _fetch_split(self, location: str) -> MarketStats | None:
        key = await self._split_key(location)
        base = self._config.market_data_url.rstrip("/")
        homes_text, rents_text = await asyncio.gather(
            self._read_source(f"{base}/zhvi/{key}.csv"),
            self._read_source(f"{base}/zori/{key}.csv"),
        )
        if homes_text is None:
            logger.info("No split market file for %r (key %s)", location, key)
            return None

        homes = await self._parser.aparse(homes_text)
        markets = build_market_stats(homes, self._lookback, ProviderKind.CSV.value)
        if not markets:
            raise ParsingError(
                f"No usable data in market file for {key}", context={"market_key": key}
            )
        if rents_text is not None:
            try:
                rents = await self._parser.aparse(rents_text)
                markets = merge_rentals(markets, rents.series_by_record, self._lookback)
            except ParsingError as e:
                logger.warning("Skipping rental file for %s: %s", key, e)
        return markets[0]

    async def _split_key(self, location: str) -> str:
        wanted = normalize_key(location)
        for entry in await self._market_index():
            candidates = {entry.id, entry.name, entry.market_key, f"{entry.city}, {entry.state}"}
            if wanted in {normalize_key(c) for c in candidates}:
                return entry.market_key
        return market_key(location)

    async def _market_index(self) -> list[MarketIndexEntry]:
        if self._split_index is None:
            source = f"{self._config.market_data_url.rstrip('/')}/{INDEX_FILENAME}"
            try:
                raw = await self._read_source(source)
                self._split_index = load_market_index(raw) if raw is not None else []
            except (TransientFetchError, ValueError) as e:
                logger.warning("Market index unavailable at %s: %s", source, e)
                return []
        return self._split_index

    # --- Source I/O ---

    async def _read_source(self, location: str) -> str | None:
        """Text of a local file or URL; None when it does not exist."""
        if not _is_url(location):
            path = Path(location)
            if not path.exists():
                return None
            try:
                return await asyncio.to_thread(path.read_text, encoding="utf-8-sig")
            except (OSError, UnicodeDecodeError) as e:
                raise TransientFetchError(
                    f"Failed to read {location}: {e}", context={"source": location}
                ) from e

        try:
            async with httpx.AsyncClient(
                timeout=self._config.request_timeout, follow_redirects=True
            ) as client:
                resp = await client.get(location)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                f"Timed out fetching {location}", context={"source": location}
            ) from e
        except httpx.RequestError as e:
            raise TransientFetchError(
                f"Request failed for {location}: {e}", context={"source": location}
            ) from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise TransientFetchError(
                f"HTTP {resp.status_code} fetching {location}",
                context={"source": location, "status_code": resp.status_code},
            )
        return resp.text
