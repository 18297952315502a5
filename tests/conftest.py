"""Shared pytest fixtures for housing-pulse."""

from datetime import date, datetime, timezone

import pytest

from housing_pulse.cache.store import PersistentCacheStore
from housing_pulse.core.config import CacheConfig
from housing_pulse.core.models import (
    MarketRecord,
    MarketStats,
    TimeSeriesPoint,
)

WIDE_CSV = (
    "RegionID,RegionName,RegionType,StateName,2023-06-30,2023-12-31,2024-06-30\n"
    '394913,"New York, NY",msa,NY,600000,610000,630000\n'
    '394355,"Austin, TX",msa,TX,470000,455000,440000\n'
    "61639,10001,zip,NY,1200000,1210000,1250000\n"
)

SIMPLE_CSV = (
    "city,state,zipCode,medianPrice,averagePrice,percentChange,lastUpdatedDate\n"
    "Austin,TX,78701,550000,575000,-2.5,2024-05-01\n"
    "Denver,CO,,610000,,3.1,2024-05-01\n"
    "Boise,ID,83702,,420000,,\n"
)


@pytest.fixture
def wide_csv() -> str:
    return WIDE_CSV


@pytest.fixture
def simple_csv() -> str:
    return SIMPLE_CSV


@pytest.fixture
def sample_record() -> MarketRecord:
    return MarketRecord(id="999", label="Springfield, IL", city="Springfield", state="IL")


@pytest.fixture
def make_stats(sample_record):
    """Factory for MarketStats with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            record=sample_record,
            current_value=110000.0,
            reference_value=100000.0,
            percent_change=10.0,
            series=[
                TimeSeriesPoint(date=date(2020, 1, 31), value=100000.0),
                TimeSeriesPoint(date=date(2021, 1, 31), value=110000.0),
            ],
            provider="csv",
            resolved_at=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        )
        defaults.update(overrides)
        return MarketStats(**defaults)

    return _make


@pytest.fixture
async def memory_cache():
    """An initialized in-memory cache store."""
    store = PersistentCacheStore(CacheConfig(sqlite_path=":memory:", legacy_path=None))
    await store.ready()
    yield store
    await store.close()
