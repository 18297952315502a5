"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse

from housing_pulse.cache.store import PersistentCacheStore
from housing_pulse.core.config import PulseConfig
from housing_pulse.core.models import ProviderKind
from housing_pulse.providers.base import DatasetManager
from housing_pulse.providers.chain import FallbackChain
from housing_pulse.providers.factory import ProviderFactory


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: PulseConfig
    cache: PersistentCacheStore
    factory: ProviderFactory
    chain: FallbackChain


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> PulseConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_cache(request: Request) -> PersistentCacheStore:
    """Dependency: retrieve the cache store."""
    return request.app.state.app_state.cache


def get_chain(request: Request) -> FallbackChain:
    """Dependency: retrieve the provider fallback chain."""
    return request.app.state.app_state.chain


def get_factory(request: Request) -> ProviderFactory:
    """Dependency: retrieve the provider factory."""
    return request.app.state.app_state.factory


def get_dataset_manager(request: Request) -> DatasetManager:
    """Dependency: the CSV dataset manager, for dataset management routes."""
    return request.app.state.app_state.factory.dataset_manager(ProviderKind.CSV)


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
