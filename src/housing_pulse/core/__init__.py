"""housing_pulse.core: foundation types, config, and exceptions."""

from housing_pulse.core.config import (
    APIConfig,
    CacheConfig,
    CsvProviderConfig,
    MockProviderConfig,
    ParserConfig,
    ProvidersConfig,
    PulseConfig,
    RemoteProviderConfig,
    StatsConfig,
    load_config,
)
from housing_pulse.core.exceptions import (
    CacheCorruptionError,
    ConfigError,
    FormatUnrecognizedError,
    HousingPulseError,
    ParsingError,
    ProviderError,
    ProviderNotConfiguredError,
    StorageError,
    TransientFetchError,
    UnsupportedCapabilityError,
)
from housing_pulse.core.models import (
    CacheEntry,
    CacheKey,
    Capability,
    CsvFormat,
    DataSource,
    Direction,
    LocationKey,
    MarketDataset,
    MarketRecord,
    MarketStats,
    ParseResult,
    ProviderDescriptor,
    ProviderKind,
    RecordId,
    RowError,
    SearchResults,
    SimpleMetrics,
    StatSummary,
    TimeSeries,
    TimeSeriesPoint,
    TimeWindow,
    UploadResult,
    market_key,
    normalize_key,
)

__all__ = [
    # Type aliases
    "RecordId",
    "LocationKey",
    "CacheKey",
    "TimeSeries",
    # Enums
    "Direction",
    "TimeWindow",
    "CsvFormat",
    "ProviderKind",
    "Capability",
    "DataSource",
    # Market models
    "MarketRecord",
    "TimeSeriesPoint",
    "MarketStats",
    "StatSummary",
    # Parsing models
    "RowError",
    "SimpleMetrics",
    "ParseResult",
    # Dataset / provider models
    "MarketDataset",
    "SearchResults",
    "UploadResult",
    "ProviderDescriptor",
    "CacheEntry",
    # Helpers
    "normalize_key",
    "market_key",
    # Config
    "PulseConfig",
    "ProvidersConfig",
    "MockProviderConfig",
    "CsvProviderConfig",
    "RemoteProviderConfig",
    "ParserConfig",
    "CacheConfig",
    "StatsConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "HousingPulseError",
    "ConfigError",
    "ParsingError",
    "FormatUnrecognizedError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "TransientFetchError",
    "UnsupportedCapabilityError",
    "StorageError",
    "CacheCorruptionError",
]
