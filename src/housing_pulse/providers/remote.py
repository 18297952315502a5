"""Remote market-metrics API provider.

Fetches ``GET {base_url}/markets/{market-key}`` with an API-key header.
The body is either JSON::

    {"id": "...", "name": "Austin, TX", "city": "Austin", "state": "TX",
     "zipCode": null, "history": [{"date": "2024-01-31", "value": 451000}, ...]}

or a wide-format CSV document, which goes through the regular parser.

Failures are never retried here. Timeouts, connection errors, 429 and 5xx
responses raise ``TransientFetchError`` so the fallback chain moves on.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx
from aiolimiter import AsyncLimiter
from pydantic import ValidationError

from housing_pulse.analytics.aggregate import build_market_stats
from housing_pulse.cache.store import CacheStore
from housing_pulse.core.config import RemoteProviderConfig
from housing_pulse.core.exceptions import (
    ParsingError,
    ProviderError,
    ProviderNotConfiguredError,
    TransientFetchError,
    UnsupportedCapabilityError,
)
from housing_pulse.core.models import (
    Capability,
    CsvFormat,
    MarketRecord,
    MarketStats,
    ParseResult,
    ProviderDescriptor,
    ProviderKind,
    SearchResults,
    TimeWindow,
    TimeSeriesPoint,
    market_key,
)
from housing_pulse.parsing.csv_parser import MarketCsvParser, parse_date, parse_number
from housing_pulse.providers.base import DEFAULT_SEARCH_LIMIT
from housing_pulse.providers.resolver import StatsResolver

logger = logging.getLogger(__name__)

_MARKETS_PATH = "/markets"


class RemoteMarketAdapter:
    """Transforms a remote JSON market document into a ``ParseResult``."""

    def adapt(self, raw_data: Any) -> ParseResult:
        """Parse one market document.

        History entries with an unparseable date or value are skipped; the
        series is returned sorted by date.

        Raises
        ------
        ParsingError
            If the document is not an object, lacks identity fields, or its
            history is not an array.
        """
        if not isinstance(raw_data, dict):
            raise ParsingError(
                "Remote market payload must be a JSON object",
                context={"type": type(raw_data).__name__},
            )

        name = str(raw_data.get("name") or "")
        city = str(raw_data.get("city") or name.partition(",")[0]).strip()
        state = str(raw_data.get("state") or name.partition(",")[2]).strip()
        zip_code = raw_data.get("zipCode") or None
        try:
            record = MarketRecord(
                id=str(raw_data.get("id") or zip_code or market_key(city, state)),
                label=name or f"{city}, {state}",
                city=city,
                state=state,
                zip_code=str(zip_code) if zip_code else None,
            )
        except ValidationError as e:
            raise ParsingError(
                f"Invalid remote market record: {e.errors()[0]['msg']}",
                context={"id": raw_data.get("id")},
            ) from e

        history = raw_data.get("history")
        if history is None:
            history = []
        if not isinstance(history, list):
            raise ParsingError(
                "Remote market history must be a JSON array",
                context={"id": record.id, "type": type(history).__name__},
            )

        points: dict[date, TimeSeriesPoint] = {}
        for item in history:
            if not isinstance(item, dict):
                continue
            sample_date = parse_date(str(item.get("date") or ""))
            raw_value = item.get("value")
            value = parse_number(None if raw_value is None else str(raw_value))
            if sample_date is None or value is None:
                continue
            points[sample_date] = TimeSeriesPoint(date=sample_date, value=value)

        series = [points[d] for d in sorted(points)]
        return ParseResult(
            format=CsvFormat.WIDE,
            records=[record],
            series_by_record={record.id: series},
        )


class RemoteApiProvider:
    """Rate-limited HTTP provider for a market-metrics API.

    Parameters
    ----------
    config : RemoteProviderConfig
        Base URL, API key, timeout and requests-per-second limit.
    cache : CacheStore | None
        Shared cache; entries expire after ``config.cache_ttl_seconds``.
    client : httpx.AsyncClient | None
        Injected by tests. Created from ``config`` if None.
    """

    def __init__(
        self,
        config: RemoteProviderConfig,
        cache: CacheStore | None = None,
        parser: MarketCsvParser | None = None,
        lookback: TimeWindow = TimeWindow.ONE_YEAR,
        adapter: RemoteMarketAdapter | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._parser = parser or MarketCsvParser()
        self._lookback = lookback
        self._adapter = adapter or RemoteMarketAdapter()
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )
        self.resolver = StatsResolver(
            ProviderKind.REMOTE.value, cache, config.cache_ttl_seconds
        )

    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=ProviderKind.REMOTE,
            name="Market Metrics API",
            description="Per-market statistics from a remote HTTP API",
            capabilities=frozenset({Capability.DETAILS}),
            is_configured=self.is_configured,
            requires_api_key=True,
        )

    def is_configured(self) -> bool:
        return bool(self._config.base_url and self._config.api_key)

    async def ready(self) -> None:
        return None

    async def get_stats(
        self, location_key: str, force_refresh: bool = False
    ) -> MarketStats | None:
        if not self.is_configured():
            raise ProviderNotConfiguredError(
                "Remote API requires base_url and api_key",
                context={"provider": ProviderKind.REMOTE.value},
            )
        return await self.resolver.resolve(location_key, self._fetch, force_refresh)

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResults:
        raise UnsupportedCapabilityError(
            "Remote API does not support search",
            context={"provider": ProviderKind.REMOTE.value},
        )

    async def list_markets(self) -> list[MarketStats]:
        raise UnsupportedCapabilityError(
            "Remote API does not support bulk stats",
            context={"provider": ProviderKind.REMOTE.value},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _fetch(self, location: str) -> MarketStats | None:
        key = market_key(location)
        url = f"{self._config.base_url}{_MARKETS_PATH}/{key}"
        resp = await self._request(url)
        if resp is None:
            logger.info("Remote API has no market %r", location)
            return None

        result = await self._parse_body(resp, key)
        markets = build_market_stats(result, self._lookback, ProviderKind.REMOTE.value)
        if not markets:
            raise ParsingError(
                f"Remote market {key} has no usable values", context={"url": url}
            )
        return markets[0]

    async def _request(self, url: str) -> httpx.Response | None:
        """One rate-limited GET. Returns None on 404."""
        headers = {self._config.api_key_header: self._config.api_key or ""}
        await self._limiter.acquire()
        try:
            resp = await self._client.get(
                url, headers=headers, timeout=self._config.request_timeout
            )
        except httpx.TimeoutException as e:
            logger.warning("Remote API timed out after %.1fs: %s", self._config.request_timeout, url)
            raise TransientFetchError(
                f"Timed out fetching {url}",
                context={"url": url, "timeout": self._config.request_timeout},
            ) from e
        except httpx.RequestError as e:
            raise TransientFetchError(
                f"Request failed for {url}: {e}", context={"url": url}
            ) from e

        if resp.status_code == 404:
            return None
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientFetchError(
                f"Remote API returned HTTP {resp.status_code}",
                context={"url": url, "status_code": resp.status_code},
            )
        if resp.status_code != 200:
            raise ProviderError(
                f"Remote API returned HTTP {resp.status_code}",
                context={"url": url, "status_code": resp.status_code},
            )
        return resp

    async def _parse_body(self, resp: httpx.Response, key: str) -> ParseResult:
        content_type = resp.headers.get("content-type", "")
        if "csv" in content_type or "text/plain" in content_type:
            return await self._parser.aparse(resp.text)
        try:
            payload = resp.json()
        except ValueError as e:
            raise ParsingError(
                f"Remote API returned invalid JSON for {key}",
                context={"content_type": content_type},
            ) from e
        return self._adapter.adapt(payload)
