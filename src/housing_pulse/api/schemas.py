"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from housing_pulse.core.models import (
    Direction,
    MarketRecord,
    MarketStats,
    TimeSeriesPoint,
    TimeWindow,
)


# -- Pagination --


class PaginatedResponse(BaseModel):
    """Wrapper for paginated list responses."""

    total: int
    offset: int
    limit: int


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    active_provider: str
    cache_entries: int


# -- Providers --


class ProviderResponse(BaseModel):
    id: str
    name: str
    description: str
    capabilities: list[str]
    requires_api_key: bool
    configured: bool
    active: bool


class ProviderListResponse(BaseModel):
    items: list[ProviderResponse]


# -- Markets --


class MarketSummaryResponse(BaseModel):
    """Headline stats without the full series."""

    id: str
    name: str
    city: str
    state: str
    zip_code: str | None = None
    current_value: float
    percent_change: float
    direction: Direction
    current_rent: float | None = None
    latest_date: date | None = None
    provider: str

    @classmethod
    def from_stats(cls, stats: MarketStats) -> MarketSummaryResponse:
        return cls(
            id=stats.record.id,
            name=stats.record.label,
            city=stats.record.city,
            state=stats.record.state,
            zip_code=stats.record.zip_code,
            current_value=stats.current_value,
            percent_change=stats.percent_change,
            direction=stats.direction,
            current_rent=stats.current_rent,
            latest_date=stats.latest_date,
            provider=stats.provider,
        )


class MarketListResponse(PaginatedResponse):
    items: list[MarketSummaryResponse]


class SearchResponse(BaseModel):
    query: str
    total: int
    items: list[MarketRecord]


class HistoryResponse(BaseModel):
    id: str
    window: TimeWindow
    series: list[TimeSeriesPoint]
    rental_series: list[TimeSeriesPoint]
    provider: str


# -- Datasets --


class DatasetResponse(BaseModel):
    success: bool
    error: str | None = None
    markets: int = 0
    filename: str | None = None
    source: str | None = None
    loaded_at: datetime | None = None


class CacheClearResponse(BaseModel):
    cleared: bool
