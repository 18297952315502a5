"""Fallback chain over ordered provider tiers."""

from __future__ import annotations

import logging

from housing_pulse.core.exceptions import HousingPulseError, ProviderNotConfiguredError
from housing_pulse.core.models import (
    Capability,
    MarketStats,
    ProviderDescriptor,
    SearchResults,
)
from housing_pulse.providers.base import DEFAULT_SEARCH_LIMIT, MarketDataProvider

logger = logging.getLogger(__name__)


class FallbackChain:
    """Consult providers in order until one answers.

    - A tier that is not configured is skipped.
    - A tier that raises is skipped; the error is logged, never retried.
    - A tier returning None (market not found) ends the lookup.

    Public operations never raise; total failure yields ``None`` or an
    empty result. ``last_tier`` holds the id of the tier that produced the
    most recent ``get_stats`` answer.
    """

    def __init__(self, tiers: list[MarketDataProvider]) -> None:
        if not tiers:
            raise ValueError("FallbackChain needs at least one provider")
        self._tiers = list(tiers)
        self.last_tier: str | None = None

    @property
    def tiers(self) -> list[MarketDataProvider]:
        return list(self._tiers)

    @property
    def active(self) -> MarketDataProvider:
        return self._tiers[0]

    def descriptor(self) -> ProviderDescriptor:
        return self.active.descriptor()

    def is_configured(self) -> bool:
        return any(tier.is_configured() for tier in self._tiers)

    async def ready(self) -> None:
        for tier in self._tiers:
            await tier.ready()

    async def get_stats(
        self, location_key: str, force_refresh: bool = False
    ) -> MarketStats | None:
        for position, tier in enumerate(self._tiers):
            desc = tier.descriptor()
            if not desc.supports(Capability.DETAILS):
                continue
            try:
                await self._require_configured(tier, desc)
                stats = await tier.get_stats(location_key, force_refresh=force_refresh)
            except ProviderNotConfiguredError as e:
                logger.info("Skipping %s: %s", desc.id.value, e)
                continue
            except HousingPulseError as e:
                logger.warning(
                    "Provider %s failed for %r, falling back: %s",
                    desc.id.value, location_key, e,
                )
                continue
            except Exception:
                logger.exception(
                    "Provider %s raised unexpectedly for %r, falling back",
                    desc.id.value, location_key,
                )
                continue

            self.last_tier = desc.id.value
            if stats is None:
                logger.info("%s has no market %r", desc.id.value, location_key)
                return None
            if position > 0:
                logger.info("Fallback tier %s answered %r", desc.id.value, location_key)
            if stats.provider != desc.id.value:
                stats = stats.model_copy(update={"provider": desc.id.value})
            return stats

        logger.error("No provider could answer %r", location_key)
        return None

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResults:
        for tier in self._tiers:
            desc = tier.descriptor()
            if not desc.supports(Capability.SEARCH):
                continue
            try:
                await self._require_configured(tier, desc)
                return await tier.search(query, limit)
            except HousingPulseError as e:
                logger.warning("Search via %s failed, falling back: %s", desc.id.value, e)
            except Exception:
                logger.exception("Search via %s raised unexpectedly, falling back", desc.id.value)
        return SearchResults(total=0, items=[])

    async def list_markets(self) -> list[MarketStats]:
        for tier in self._tiers:
            desc = tier.descriptor()
            if not desc.supports(Capability.BULK_STATS):
                continue
            try:
                await self._require_configured(tier, desc)
                return await tier.list_markets()
            except HousingPulseError as e:
                logger.warning("Listing via %s failed, falling back: %s", desc.id.value, e)
            except Exception:
                logger.exception("Listing via %s raised unexpectedly, falling back", desc.id.value)
        return []

    async def close(self) -> None:
        for tier in self._tiers:
            await tier.close()

    async def _require_configured(
        self, tier: MarketDataProvider, desc: ProviderDescriptor
    ) -> None:
        await tier.ready()
        if not tier.is_configured():
            raise ProviderNotConfiguredError(
                f"Provider {desc.id.value} is not configured",
                context={"provider": desc.id.value},
            )
