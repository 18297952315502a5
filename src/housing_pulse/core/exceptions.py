"""Custom exception hierarchy for housing-pulse."""

from typing import Any


class HousingPulseError(Exception):
    """Base exception for all housing-pulse errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(HousingPulseError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class ParsingError(HousingPulseError):
    """CSV content could not be turned into market records.

    Policy: reject the upload or skip the provider tier. Never fatal.

    Context keys:
        reason: str — why parsing failed
    """


class FormatUnrecognizedError(ParsingError):
    """Header row matches neither the wide time-series nor the simple schema.

    Context keys:
        header: list[str] — the header tokens that were inspected
    """


class ProviderError(HousingPulseError):
    """A data provider could not answer a request.

    Policy: the fallback chain moves on to the next tier. No retry.

    Context keys:
        provider: str — the provider id
        location: str — the location key being resolved
    """


class ProviderNotConfiguredError(ProviderError):
    """Provider is missing required configuration (API key, dataset, ...)."""


class TransientFetchError(ProviderError):
    """Network failure, timeout, or retryable HTTP status from a source.

    Context keys:
        url: str — the URL or path that was being fetched
        status_code: int | None — HTTP status code if applicable
    """


class UnsupportedCapabilityError(ProviderError):
    """A provider was asked for a capability its descriptor does not declare.

    Context keys:
        capability: str — the requested capability
    """


class StorageError(HousingPulseError):
    """Cache database operation failed.

    Policy: raised by the store. Providers log it and degrade to a miss.

    Context keys:
        operation: str — "get", "set", "migrate", etc.
        key: str — the cache key involved
    """


class CacheCorruptionError(StorageError):
    """A persisted cache payload could not be decoded.

    Policy: treated as a miss; the entry is evicted.
    """
