"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

RecordId = str
LocationKey = str
CacheKey = str

# --- Enumerations ---


class Direction(StrEnum):
    """Direction of a value change."""

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class TimeWindow(StrEnum):
    """Display and lookback windows, relative to a series' latest sample."""

    ONE_MONTH = "1M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"
    MAX = "MAX"

    @property
    def months(self) -> int | None:
        """Calendar months covered by the window, None for MAX."""
        return _WINDOW_MONTHS[self]


_WINDOW_MONTHS: dict[TimeWindow, int | None] = {
    TimeWindow.ONE_MONTH: 1,
    TimeWindow.SIX_MONTHS: 6,
    TimeWindow.ONE_YEAR: 12,
    TimeWindow.FIVE_YEARS: 60,
    TimeWindow.MAX: None,
}


class CsvFormat(StrEnum):
    """CSV schemas understood by the parser."""

    WIDE = "wide"
    SIMPLE = "simple"


class ProviderKind(StrEnum):
    """Provider variants selectable through configuration."""

    MOCK = "mock"
    CSV = "csv"
    REMOTE = "remote"


class Capability(StrEnum):
    """Operations a provider may declare support for."""

    SEARCH = "search"
    DETAILS = "details"
    BULK_STATS = "bulk_stats"


class DataSource(StrEnum):
    """Origin of a persisted bulk dataset."""

    DEFAULT = "default"
    USER_UPLOAD = "user_upload"


# --- Market Models ---


class MarketRecord(BaseModel):
    """One market (metro, city or zip) as described by an input row."""

    model_config = ConfigDict(frozen=True)

    id: RecordId
    label: str
    city: str
    state: str
    zip_code: str | None = None

    @field_validator("id", "city", "state")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @property
    def display_name(self) -> str:
        return f"{self.city}, {self.state}"


class TimeSeriesPoint(BaseModel):
    """A single dated sample."""

    model_config = ConfigDict(frozen=True)

    date: date
    value: float


TimeSeries = list[TimeSeriesPoint]


class MarketStats(BaseModel):
    """Normalized statistics for one market — identical for every provider.

    ``provider`` records which provider tier actually produced the stats.
    The rental fields are populated only when a rental index was merged in.
    """

    model_config = ConfigDict(frozen=True)

    record: MarketRecord
    current_value: float
    reference_value: float | None = None
    percent_change: float = 0.0
    direction: Direction = Direction.NEUTRAL
    series: TimeSeries = []
    min_value: float | None = None
    max_value: float | None = None
    rental_series: TimeSeries = []
    current_rent: float | None = None
    rent_change: float | None = None
    provider: str = "unknown"
    resolved_at: datetime

    @model_validator(mode="after")
    def series_sorted(self) -> MarketStats:
        dates = [p.date for p in self.series]
        if dates != sorted(dates):
            raise ValueError("series must be sorted ascending by date")
        return self

    @property
    def latest_date(self) -> date | None:
        return self.series[-1].date if self.series else None


class StatSummary(BaseModel):
    """Output of the stat aggregator."""

    model_config = ConfigDict(frozen=True)

    current_value: float | None = None
    reference_value: float | None = None
    percent_change: float = 0.0
    direction: Direction = Direction.NEUTRAL


# --- Parsing Models ---


class RowError(BaseModel):
    """Diagnostic for an input row that was skipped."""

    model_config = ConfigDict(frozen=True)

    line: int
    reason: str


class SimpleMetrics(BaseModel):
    """Optional numeric fields of a simple-format row."""

    model_config = ConfigDict(frozen=True)

    median_price: float | None = None
    average_price: float | None = None
    percent_change: float | None = None
    last_updated: date | None = None

    @property
    def headline_value(self) -> float | None:
        """Median price if present, otherwise average price."""
        return self.median_price if self.median_price is not None else self.average_price


class ParseResult(BaseModel):
    """Everything the parser extracted from one CSV document."""

    model_config = ConfigDict(frozen=True)

    format: CsvFormat
    records: list[MarketRecord]
    series_by_record: dict[RecordId, TimeSeries]
    metrics_by_record: dict[RecordId, SimpleMetrics] = {}
    diagnostics: list[RowError] = []
    truncated: bool = False


# --- Dataset & Provider Models ---


class MarketDataset(BaseModel):
    """A bulk dataset persisted by the CSV provider."""

    model_config = ConfigDict(frozen=True)

    filename: str
    source: DataSource
    markets: list[MarketStats]
    loaded_at: datetime


class SearchResults(BaseModel):
    """Search hits, limited, plus the total match count."""

    model_config = ConfigDict(frozen=True)

    total: int
    items: list[MarketRecord]


class UploadResult(BaseModel):
    """Outcome of a CSV upload."""

    model_config = ConfigDict(frozen=True)

    success: bool
    error: str | None = None
    markets: int = 0


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of a provider variant."""

    id: ProviderKind
    name: str
    description: str
    capabilities: frozenset[Capability]
    is_configured: Callable[[], bool] = field(compare=False, repr=False)
    requires_api_key: bool = False

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


# --- Cache Models ---


class CacheEntry(BaseModel):
    """A stored cache row. ``ttl_seconds=None`` never expires."""

    model_config = ConfigDict(frozen=True)

    key: CacheKey
    payload: str
    stored_at: datetime
    ttl_seconds: float | None = None

    @field_validator("ttl_seconds")
    @classmethod
    def ttl_non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {v}")
        return v

    @property
    def expires_at(self) -> datetime | None:
        if self.ttl_seconds is None:
            return None
        return self.stored_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        expires = self.expires_at
        return expires is not None and now > expires


_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9-]+")


def normalize_key(key: str) -> CacheKey:
    """Trim, lowercase and collapse whitespace."""
    return _WHITESPACE.sub(" ", key.strip().lower())


def market_key(*parts: str) -> str:
    """Filename-safe slug, e.g. ``("Springfield, IL", "IL")`` -> ``springfield-il-il``."""
    raw = "-".join(parts).lower()
    slug = _NON_SLUG.sub("-", raw)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")
