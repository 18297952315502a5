"""Provider construction from configuration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from housing_pulse.cache.store import CacheStore
from housing_pulse.core.config import PulseConfig
from housing_pulse.core.exceptions import ProviderNotConfiguredError
from housing_pulse.core.models import ProviderDescriptor, ProviderKind
from housing_pulse.parsing.csv_parser import MarketCsvParser
from housing_pulse.providers.base import DatasetManager, MarketDataProvider
from housing_pulse.providers.chain import FallbackChain
from housing_pulse.providers.csv_provider import CsvMarketProvider
from housing_pulse.providers.mock import MockMarketProvider
from housing_pulse.providers.remote import RemoteApiProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderStatus:
    descriptor: ProviderDescriptor
    configured: bool
    active: bool


class ProviderFactory:
    """Builds and reuses one provider instance per ``ProviderKind``.

    Parameters
    ----------
    config : PulseConfig
        Full configuration; each provider receives its own section.
    cache : CacheStore | None
        Shared by every provider built here.
    """

    def __init__(self, config: PulseConfig, cache: CacheStore | None = None) -> None:
        self._config = config
        self._cache = cache
        self._builders: dict[ProviderKind, Callable[[], MarketDataProvider]] = {
            ProviderKind.MOCK: self._build_mock,
            ProviderKind.REMOTE: self._build_remote,
        }
        self._dataset_builders: dict[ProviderKind, Callable[[], CsvMarketProvider]] = {
            ProviderKind.CSV: self._build_csv,
        }
        self._instances: dict[ProviderKind, MarketDataProvider] = {}
        self._managers: dict[ProviderKind, DatasetManager] = {}

    def get(self, kind: ProviderKind | str) -> MarketDataProvider:
        """Return the provider for ``kind``, constructing it on first use."""
        kind = ProviderKind(kind)
        provider = self._instances.get(kind)
        if provider is None:
            if kind in self._dataset_builders:
                return self._build_managed(kind)
            provider = self._builders[kind]()
            self._instances[kind] = provider
            logger.debug("Created %s provider", kind.value)
        return provider

    def dataset_manager(self, kind: ProviderKind | str = ProviderKind.CSV) -> DatasetManager:
        """Return the upload and reset surface of the provider for ``kind``.

        Raises
        ------
        ProviderNotConfiguredError
            If providers of ``kind`` hold no replaceable dataset.
        """
        kind = ProviderKind(kind)
        if kind not in self._dataset_builders:
            raise ProviderNotConfiguredError(
                f"Provider {kind.value} does not manage datasets",
                context={"provider": kind.value},
            )
        manager = self._managers.get(kind)
        if manager is None:
            self._build_managed(kind)
            manager = self._managers[kind]
        return manager

    def create_chain(self) -> FallbackChain:
        """Chain of the active provider followed by its configured fallbacks."""
        kinds: list[ProviderKind] = []
        for kind in self._config.providers.chain:
            if kind not in kinds:
                kinds.append(kind)
        logger.info("Provider chain: %s", " -> ".join(k.value for k in kinds))
        return FallbackChain([self.get(k) for k in kinds])

    def available_providers(self) -> list[ProviderStatus]:
        active = self._config.providers.active
        statuses = []
        for kind in ProviderKind:
            provider = self.get(kind)
            statuses.append(
                ProviderStatus(
                    descriptor=provider.descriptor(),
                    configured=provider.is_configured(),
                    active=kind is active,
                )
            )
        return statuses

    async def clear(self) -> None:
        """Close and forget every constructed provider."""
        instances = list(self._instances.values())
        self._instances.clear()
        self._managers.clear()
        for provider in instances:
            await provider.close()

    def _parser(self) -> MarketCsvParser:
        return MarketCsvParser(
            max_records=self._config.parser.max_records,
            chunk_size=self._config.parser.chunk_size,
        )

    def _build_mock(self) -> MarketDataProvider:
        return MockMarketProvider(
            self._config.mock, self._cache, self._parser(), self._config.stats.lookback_window
        )

    def _build_managed(self, kind: ProviderKind) -> MarketDataProvider:
        provider = self._dataset_builders[kind]()
        self._instances[kind] = provider
        self._managers[kind] = provider
        logger.debug("Created %s provider", kind.value)
        return provider

    def _build_csv(self) -> CsvMarketProvider:
        return CsvMarketProvider(
            self._config.csv, self._cache, self._parser(), self._config.stats.lookback_window
        )

    def _build_remote(self) -> MarketDataProvider:
        return RemoteApiProvider(
            self._config.remote, self._cache, self._parser(), self._config.stats.lookback_window
        )
