"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from housing_pulse.api.deps import AppState, api_key_middleware
from housing_pulse.api.routes import router
from housing_pulse.cache.store import PersistentCacheStore
from housing_pulse.core.config import PulseConfig, load_config
from housing_pulse.core.exceptions import (
    ConfigError,
    HousingPulseError,
    ParsingError,
    ProviderNotConfiguredError,
    StorageError,
    TransientFetchError,
    UnsupportedCapabilityError,
)
from housing_pulse.providers.factory import ProviderFactory

logger = logging.getLogger(__name__)

_STATUS_MAP: dict[type[HousingPulseError], int] = {
    ConfigError: 400,
    ParsingError: 422,
    ProviderNotConfiguredError: 503,
    UnsupportedCapabilityError: 501,
    TransientFetchError: 502,
    StorageError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    cache = PersistentCacheStore(config.cache)
    cache.start()
    factory = ProviderFactory(config, cache)
    chain = factory.create_chain()

    app.state.app_state = AppState(config=config, cache=cache, factory=factory, chain=chain)
    logger.info("housing-pulse API started (active provider: %s)", config.providers.active.value)

    yield

    await factory.clear()
    await cache.close()


def create_app(config: PulseConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import housing_pulse

    app = FastAPI(
        title="Housing Pulse API",
        description="Housing-market statistics with provider fallback and caching",
        version=housing_pulse.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Optional API key middleware
    if config and config.api.api_key:
        app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(HousingPulseError)
    async def pulse_exception_handler(request: Request, exc: HousingPulseError):
        status = next(
            (_STATUS_MAP[cls] for cls in type(exc).__mro__ if cls in _STATUS_MAP), 500
        )
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
