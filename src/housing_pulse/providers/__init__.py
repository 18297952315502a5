"""Market data providers, the shared resolver, and the fallback chain."""

from housing_pulse.providers.base import (
    DatasetManager,
    MarketDataProvider,
    MarketIndex,
    lookup_keys,
)
from housing_pulse.providers.chain import FallbackChain
from housing_pulse.providers.csv_provider import DATASET_KEY, CsvMarketProvider, LoadProgress
from housing_pulse.providers.factory import ProviderFactory, ProviderStatus
from housing_pulse.providers.mock import MockMarketProvider
from housing_pulse.providers.remote import RemoteApiProvider, RemoteMarketAdapter
from housing_pulse.providers.resolver import StatsResolver
from housing_pulse.providers.singleflight import SingleFlight

__all__ = [
    "DatasetManager",
    "MarketDataProvider",
    "MarketIndex",
    "lookup_keys",
    "FallbackChain",
    "CsvMarketProvider",
    "DATASET_KEY",
    "LoadProgress",
    "ProviderFactory",
    "ProviderStatus",
    "MockMarketProvider",
    "RemoteApiProvider",
    "RemoteMarketAdapter",
    "StatsResolver",
    "SingleFlight",
]
