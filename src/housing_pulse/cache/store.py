"""Persistent cache store: SQLite via aiosqlite, with an explicit readiness barrier.

Initialization (opening the database, applying schema migrations, and
importing entries from the legacy JSON store) runs once in a background
task. ``ready()`` returns an awaitable for that task and every operation
awaits it before its first query, so a read issued right after
construction waits for migrated data instead of observing an empty store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, Protocol, TypeVar, runtime_checkable

import aiosqlite
from pydantic import BaseModel, ValidationError

from housing_pulse.core.config import CacheConfig
from housing_pulse.core.exceptions import CacheCorruptionError, StorageError
from housing_pulse.core.models import CacheEntry, MarketStats, normalize_key

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    """ISO timestamp, assumed UTC when naive."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@runtime_checkable
class CacheStore(Protocol):
    """Key/value cache contract used by providers."""

    def ready(self) -> Awaitable[None]: ...
    async def get(self, key: str, model: type[ModelT] = ...) -> ModelT | None: ...
    async def set(self, key: str, payload: BaseModel, ttl_seconds: float | None) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def delete_prefix(self, prefix: str) -> int: ...
    async def clear(self) -> None: ...


class PersistentCacheStore:
    """SQLite-backed TTL cache for pydantic payloads.

    Parameters
    ----------
    config : CacheConfig
        ``sqlite_path`` may be ``":memory:"``. ``legacy_path`` points at
        the JSON file written by the old synchronous store; it is imported
        once and renamed to ``<name>.migrated``.
    clock : callable, optional
        Returns the current UTC time. Injected by tests.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    stored_at TEXT NOT NULL,
                    ttl_seconds REAL
                )""",
            ],
        ),
    }

    def __init__(
        self,
        config: CacheConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = config.sqlite_path
        self._legacy_path = Path(config.legacy_path) if config.legacy_path else None
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._init_task: asyncio.Task[None] | None = None

    # --- Lifecycle ---

    def start(self) -> None:
        """Kick off background initialization without waiting for it."""
        self.ready()

    def ready(self) -> Awaitable[None]:
        """Awaitable that resolves once initialization and migration are done.

        Safe to call any number of times; initialization runs once. A
        failed initialization is re-raised (as ``StorageError``) to every
        awaiter.
        """
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        return asyncio.shield(self._init_task)

    @property
    def is_ready(self) -> bool:
        return (
            self._init_task is not None
            and self._init_task.done()
            and not self._init_task.cancelled()
            and self._init_task.exception() is None
        )

    async def close(self) -> None:
        if self._init_task is not None and not self._init_task.done():
            await asyncio.gather(self._init_task, return_exceptions=True)
        if self._db is not None:
            await self._db.close()
            self._db = None
        self._init_task = None

    async def _initialize(self) -> None:
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
            await self._migrate_legacy()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize cache store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying cache migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    async def _migrate_legacy(self) -> None:
        """Import entries from the legacy JSON store, then retire the file.

        Legacy format: ``{key: {"payload": {...}, "storedAt": iso, "ttl": seconds|null}}``.
        Malformed entries are skipped.
        """
        if self._legacy_path is None or not self._legacy_path.exists():
            return

        try:
            raw = json.loads(self._legacy_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable legacy cache %s: %s", self._legacy_path, e)
            raw = {}

        migrated = 0
        skipped = 0
        if isinstance(raw, dict):
            for key, item in raw.items():
                entry = self._legacy_entry(key, item)
                if entry is None:
                    skipped += 1
                    continue
                await self._upsert(entry)
                migrated += 1
            await self._db.commit()

        retired = self._legacy_path.with_name(self._legacy_path.name + ".migrated")
        self._legacy_path.replace(retired)
        logger.info(
            "Migrated %d legacy cache entries (%d skipped) from %s",
            migrated, skipped, self._legacy_path,
        )

    def _legacy_entry(self, key: str, item: Any) -> CacheEntry | None:
        if not isinstance(item, dict) or "payload" not in item:
            return None
        try:
            stored_at = item.get("storedAt")
            return CacheEntry(
                key=normalize_key(key),
                payload=json.dumps(item["payload"]),
                stored_at=_parse_timestamp(stored_at) if stored_at else self._clock(),
                ttl_seconds=item.get("ttl"),
            )
        except (TypeError, ValueError, ValidationError):
            return None

    # --- Operations ---

    async def get(self, key: str, model: type[ModelT] = MarketStats) -> ModelT | None:
        """Return the payload for ``key`` decoded as ``model``, or None.

        Expired and undecodable entries are evicted and reported as misses.
        """
        entry = await self.get_entry(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry expired: %s", entry.key)
            await self.delete(entry.key)
            return None
        try:
            return self._decode(entry, model)
        except CacheCorruptionError as e:
            logger.warning("%s; evicting", e)
            await self.delete(entry.key)
            return None

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Raw entry lookup without expiry checks."""
        await self.ready()
        normalized = normalize_key(key)
        try:
            async with self._db.execute(
                "SELECT key, payload, stored_at, ttl_seconds FROM cache_entries WHERE key = ?",
                (normalized,),
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to read cache entry: {e}",
                context={"operation": "get", "key": normalized},
            ) from e
        if row is None:
            return None
        try:
            return CacheEntry(
                key=row[0],
                payload=row[1],
                stored_at=_parse_timestamp(row[2]),
                ttl_seconds=row[3],
            )
        except (ValueError, ValidationError):
            logger.warning("Malformed cache row for %s; evicting", normalized)
            await self.delete(normalized)
            return None

    async def set(
        self,
        key: str,
        payload: BaseModel,
        ttl_seconds: float | None = None,
    ) -> None:
        """Upsert ``payload`` under ``key``. ``ttl_seconds=None`` never expires."""
        await self.ready()
        entry = CacheEntry(
            key=normalize_key(key),
            payload=payload.model_dump_json(),
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds,
        )
        try:
            await self._upsert(entry)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to write cache entry: {e}",
                context={"operation": "set", "key": entry.key},
            ) from e

    async def delete(self, key: str) -> None:
        await self.ready()
        await self._execute(
            "DELETE FROM cache_entries WHERE key = ?", (normalize_key(key),), "delete"
        )

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with ``prefix``. Returns the count."""
        await self.ready()
        normalized = normalize_key(prefix)
        escaped = (
            normalized.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        cursor = await self._execute(
            "DELETE FROM cache_entries WHERE key LIKE ? ESCAPE '\\'",
            (escaped + "%",),
            "delete_prefix",
        )
        return cursor.rowcount

    async def clear(self) -> None:
        """Remove every entry."""
        await self.ready()
        await self._execute("DELETE FROM cache_entries", (), "clear")
        logger.info("Cache cleared")

    async def stats(self) -> dict[str, int]:
        """Entry counts, for status and health surfaces."""
        await self.ready()
        now = self._clock()
        total = 0
        expired = 0
        async with self._db.execute(
            "SELECT key, payload, stored_at, ttl_seconds FROM cache_entries"
        ) as cursor:
            async for row in cursor:
                total += 1
                try:
                    entry = CacheEntry(
                        key=row[0],
                        payload=row[1],
                        stored_at=_parse_timestamp(row[2]),
                        ttl_seconds=row[3],
                    )
                except (ValueError, ValidationError):
                    continue
                if entry.is_expired(now):
                    expired += 1
        return {"entries": total, "expired": expired}

    # --- Helpers ---

    def _decode(self, entry: CacheEntry, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate_json(entry.payload)
        except ValidationError as e:
            raise CacheCorruptionError(
                f"Unreadable cache payload for {entry.key}",
                context={"operation": "get", "key": entry.key, "errors": e.error_count()},
            ) from e

    async def _upsert(self, entry: CacheEntry) -> None:
        await self._db.execute(
            """INSERT OR REPLACE INTO cache_entries
               (key, payload, stored_at, ttl_seconds)
               VALUES (?, ?, ?, ?)""",
            (entry.key, entry.payload, entry.stored_at.isoformat(), entry.ttl_seconds),
        )

    async def _execute(
        self, sql: str, params: tuple, operation: str
    ) -> aiosqlite.Cursor:
        try:
            cursor = await self._db.execute(sql, params)
            await self._db.commit()
            return cursor
        except Exception as e:
            raise StorageError(
                f"Cache {operation} failed: {e}",
                context={"operation": operation},
            ) from e
