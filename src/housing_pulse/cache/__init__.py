"""Persistent, async-safe cache for provider results."""

from housing_pulse.cache.store import CacheStore, PersistentCacheStore

__all__ = ["CacheStore", "PersistentCacheStore"]
