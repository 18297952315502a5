"""FastAPI route definitions for the housing-pulse API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

import housing_pulse
from housing_pulse.analytics.time_range import filter_series
from housing_pulse.api.deps import (
    get_cache,
    get_chain,
    get_config,
    get_dataset_manager,
    get_factory,
)
from housing_pulse.api.schemas import (
    CacheClearResponse,
    DatasetResponse,
    HealthResponse,
    HistoryResponse,
    MarketListResponse,
    MarketSummaryResponse,
    ProviderListResponse,
    ProviderResponse,
    SearchResponse,
)
from housing_pulse.cache.store import PersistentCacheStore
from housing_pulse.core.models import MarketStats, TimeWindow
from housing_pulse.providers.base import DatasetManager
from housing_pulse.providers.chain import FallbackChain
from housing_pulse.providers.factory import ProviderFactory

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    cache: PersistentCacheStore = Depends(get_cache),
    config=Depends(get_config),
):
    """System health and basic statistics."""
    stats = await cache.stats()
    return HealthResponse(
        status="ok",
        version=housing_pulse.__version__,
        active_provider=config.providers.active.value,
        cache_entries=stats["entries"],
    )


# -- Providers --


@router.get("/providers", response_model=ProviderListResponse)
async def list_providers(factory: ProviderFactory = Depends(get_factory)):
    """Every provider variant with its configured status."""
    items = [
        ProviderResponse(
            id=s.descriptor.id.value,
            name=s.descriptor.name,
            description=s.descriptor.description,
            capabilities=sorted(c.value for c in s.descriptor.capabilities),
            requires_api_key=s.descriptor.requires_api_key,
            configured=s.configured,
            active=s.active,
        )
        for s in factory.available_providers()
    ]
    return ProviderListResponse(items=items)


# -- Markets --


@router.get("/markets", response_model=MarketListResponse)
async def list_markets(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    chain: FallbackChain = Depends(get_chain),
):
    """Bulk market stats with pagination."""
    markets = await chain.list_markets()
    page = markets[offset : offset + limit]
    return MarketListResponse(
        total=len(markets),
        offset=offset,
        limit=limit,
        items=[MarketSummaryResponse.from_stats(m) for m in page],
    )


@router.get("/markets/search", response_model=SearchResponse)
async def search_markets(
    q: str = Query(..., description="City, state, metro name or zip code"),
    limit: int = Query(100, ge=1, le=500),
    chain: FallbackChain = Depends(get_chain),
):
    """Search markets by substring."""
    results = await chain.search(q, limit)
    return SearchResponse(query=q, total=results.total, items=results.items)


@router.get("/markets/{location}/stats", response_model=MarketStats)
async def get_market_stats(
    location: str,
    refresh: bool = Query(False, description="Bypass the cache"),
    chain: FallbackChain = Depends(get_chain),
):
    """Full stats for one market."""
    stats = await chain.get_stats(location, force_refresh=refresh)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Market {location} not found")
    return stats


@router.get("/markets/{location}/history", response_model=HistoryResponse)
async def get_market_history(
    location: str,
    window: TimeWindow = Query(TimeWindow.ONE_YEAR),
    chain: FallbackChain = Depends(get_chain),
):
    """Value and rent series trimmed to a display window."""
    stats = await chain.get_stats(location)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Market {location} not found")
    return HistoryResponse(
        id=stats.record.id,
        window=window,
        series=filter_series(stats.series, window),
        rental_series=filter_series(stats.rental_series, window),
        provider=stats.provider,
    )


# -- Datasets --


@router.post("/datasets/upload", response_model=DatasetResponse)
async def upload_dataset(
    request: Request,
    filename: str = Query("upload.csv"),
    datasets: DatasetManager = Depends(get_dataset_manager),
):
    """Replace the CSV dataset with the raw CSV request body."""
    body = await request.body()
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="Upload must be UTF-8 text")

    result = await datasets.upload(text, filename)
    if not result.success:
        raise HTTPException(status_code=422, detail=result.error)
    return DatasetResponse(
        success=True,
        markets=result.markets,
        filename=datasets.filename,
        source=datasets.data_source,
        loaded_at=datasets.dataset.loaded_at if datasets.dataset else None,
    )


@router.post("/datasets/reset", response_model=DatasetResponse)
async def reset_dataset(datasets: DatasetManager = Depends(get_dataset_manager)):
    """Discard uploaded data and reload the default dataset."""
    dataset = await datasets.reset_to_default()
    return DatasetResponse(
        success=True,
        markets=len(dataset.markets),
        filename=dataset.filename,
        source=dataset.source,
        loaded_at=dataset.loaded_at,
    )


# -- Cache --


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(cache: PersistentCacheStore = Depends(get_cache)):
    """Remove every cached entry."""
    await cache.clear()
    return CacheClearResponse(cleared=True)
