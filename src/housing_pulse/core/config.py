"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from housing_pulse.core.exceptions import ConfigError
from housing_pulse.core.models import ProviderKind, TimeWindow

logger = logging.getLogger(__name__)


class ProvidersConfig(BaseModel):
    """Active provider and its fallback chain."""

    model_config = ConfigDict(frozen=True)

    active: ProviderKind = ProviderKind.CSV
    fallback: list[ProviderKind] = [ProviderKind.MOCK]

    @field_validator("fallback", mode="before")
    @classmethod
    def split_fallback_string(cls, v: object) -> object:
        """Accept ``"csv,mock"`` (or an empty string) from env vars."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @model_validator(mode="after")
    def active_not_in_fallback(self) -> ProvidersConfig:
        if self.active in self.fallback:
            raise ValueError(
                f"fallback must not repeat the active provider {self.active.value!r}"
            )
        if len(set(self.fallback)) != len(self.fallback):
            raise ValueError("fallback must not contain duplicates")
        return self

    @property
    def chain(self) -> list[ProviderKind]:
        return [self.active, *self.fallback]


class MockProviderConfig(BaseModel):
    """Bundled fixture provider."""

    model_config = ConfigDict(frozen=True)

    cache_ttl_seconds: float | None = 300.0
    latency_seconds: float = 0.0


class CsvProviderConfig(BaseModel):
    """Bulk time-series (CSV) provider.

    ``default_dataset`` and ``default_rentals`` accept a filesystem path or
    an http(s) URL. ``split_mode`` fetches one file per market from
    ``market_data_url`` instead of loading a bulk dataset.
    """

    model_config = ConfigDict(frozen=True)

    default_dataset: str | None = "./data/default-housing-data.csv"
    default_rentals: str | None = "./data/default-rental-data.csv"
    split_mode: bool = False
    market_data_url: str = "./data/markets"
    request_timeout: float = 30.0
    cache_ttl_seconds: float | None = None

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v


class RemoteProviderConfig(BaseModel):
    """HTTP market-metrics API provider."""

    model_config = ConfigDict(frozen=True)

    base_url: str | None = None
    api_key: str | None = None
    api_key_header: str = "X-Api-Key"
    request_timeout: float = 10.0
    rate_limit: int = 5
    cache_ttl_seconds: float | None = 3600.0

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class ParserConfig(BaseModel):
    """Resource bounds for CSV parsing."""

    model_config = ConfigDict(frozen=True)

    max_records: int = 5000
    chunk_size: int = 500

    @field_validator("max_records", "chunk_size")
    @classmethod
    def positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


class CacheConfig(BaseModel):
    """Persistent cache store configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/housing_pulse_cache.db"
    legacy_path: str | None = "./data/housing_pulse_cache.json"


class StatsConfig(BaseModel):
    """Stat aggregation settings."""

    model_config = ConfigDict(frozen=True)

    lookback_window: TimeWindow = TimeWindow.ONE_YEAR


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class PulseConfig(BaseModel):
    """Root configuration for the entire housing-pulse system."""

    model_config = ConfigDict(frozen=True)

    providers: ProvidersConfig = ProvidersConfig()
    mock: MockProviderConfig = MockProviderConfig()
    csv: CsvProviderConfig = CsvProviderConfig()
    remote: RemoteProviderConfig = RemoteProviderConfig()
    parser: ParserConfig = ParserConfig()
    cache: CacheConfig = CacheConfig()
    stats: StatsConfig = StatsConfig()
    api: APIConfig = APIConfig()


ENV_PREFIX = "HOUSING_PULSE_"
DEFAULT_CONFIG_FILES = ("housing-pulse.yml", "housing-pulse.yaml")

# Env values that unset an optional field, e.g. HOUSING_PULSE_CSV__DEFAULT_RENTALS=none
_NULL_VALUES = {"none", "null"}


def load_config(
    config_path: str | None = None,
    env_prefix: str = ENV_PREFIX,
) -> PulseConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables, one per field: ``{prefix}{SECTION}__{FIELD}``
    2. YAML file: ``config_path``, else ``{prefix}CONFIG``, else
       ``housing-pulse.yml`` / ``housing-pulse.yaml`` in the cwd
    3. Built-in defaults

    Env values stay strings and are coerced by the section models, so
    ``HOUSING_PULSE_REMOTE__RATE_LIMIT=2`` sets ``remote.rate_limit = 2``
    and ``HOUSING_PULSE_PROVIDERS__FALLBACK=csv,mock`` is split by
    ``ProvidersConfig``.
    """
    try:
        yaml_path = _resolve_config_path(config_path, env_prefix)
        base = _load_yaml(yaml_path) if yaml_path is not None else {}
        merged = _merge_env_vars(base, env_prefix)
        return PulseConfig.model_validate(merged)
    except ConfigError:
        raise
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "config"
        raise ConfigError(
            f"Invalid configuration for {field}: {first['msg']}",
            context={"field": field, "errors": e.error_count()},
        ) from e


def _resolve_config_path(explicit: str | None, env_prefix: str) -> Path | None:
    """Pick the YAML file to load, or None to run on env vars and defaults."""
    env_var = f"{env_prefix}CONFIG"
    if explicit is not None:
        source, candidate = "config_path", explicit
    else:
        source, candidate = env_var, os.environ.get(env_var)

    if candidate:
        path = Path(candidate)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found: {candidate}",
                context={"field": source, "value": candidate},
            )
        return path

    for name in DEFAULT_CONFIG_FILES:
        path = Path(name)
        if path.is_file():
            return path
    return None


def _load_yaml(path: Path) -> dict:
    """Parse a YAML config file into a mapping of section dicts."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to read YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay ``{prefix}{SECTION}__{FIELD}`` variables onto ``base``.

    Variables naming an unknown section or field are logged and ignored.
    ``base`` is not modified.
    """
    result = dict(base)

    for key, value in sorted(os.environ.items()):
        if not key.startswith(prefix) or key == f"{prefix}CONFIG":
            continue

        section, sep, field = key[len(prefix) :].lower().partition("__")
        model = PulseConfig.model_fields.get(section)
        if not sep or model is None or field not in model.annotation.model_fields:
            logger.warning("Ignoring unknown config variable %s", key)
            continue

        overrides = result.get(section)
        overrides = dict(overrides) if isinstance(overrides, dict) else {}
        overrides[field] = None if value.strip().lower() in _NULL_VALUES else value
        result[section] = overrides

    return result
