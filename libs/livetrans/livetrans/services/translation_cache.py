"""Content-addressed translation cache with engine-based retention."""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone

from psycopg_pool import AsyncConnectionPool

from livetrans.config import Settings, TranslationCacheConfig
from livetrans.exceptions import ConfigurationError
from livetrans.models.translation import CacheStats, TranslationCacheEntry
from livetrans.repositories.translation_cache_repo import (
    TranslationCacheRepository,
    TranslationCacheStore,
)

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def content_hash(text: str, language: str) -> str:
    return hashlib.sha256(f"{text}:{language}".encode("utf-8")).hexdigest()


class MemoryTranslationCacheStore(TranslationCacheStore):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._rows: dict[str, TranslationCacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._rows)

    def all_entries(self) -> list[TranslationCacheEntry]:
        return list(self._rows.values())

    async def get_live(self, content_hash: str, now: datetime) -> TranslationCacheEntry | None:
        row = self._rows.get(content_hash)
        if row is None or row.is_expired(now):
            return None
        return dataclasses.replace(row)

    async def increment_usage(self, entry_id: str) -> None:
        for row in self._rows.values():
            if row.id == entry_id:
                row.usage_count += 1
                return

    async def insert(self, entry: TranslationCacheEntry) -> str:
        async with self._lock:
            existing = self._rows.get(entry.content_hash)
            live = existing is not None and not existing.is_expired(entry.created_at)
            if live and existing.quality_score >= entry.quality_score:
                return existing.id
            row = dataclasses.replace(entry)
            if existing is not None:
                row.id = existing.id
                row.expires_at = max(existing.expires_at, entry.expires_at)
                if live:
                    row.usage_count = existing.usage_count
            self._rows[entry.content_hash] = row
            return row.id

    async def _delete_where(self, predicate) -> int:
        async with self._lock:
            doomed = [key for key, row in self._rows.items() if predicate(row)]
            for key in doomed:
                del self._rows[key]
            return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete_where(lambda r: r.is_expired(now))

    async def delete_low_usage(self, min_usage_count: int, created_before: datetime) -> int:
        return await self._delete_where(
            lambda r: r.usage_count < min_usage_count and r.created_at < created_before
        )

    async def delete_created_before(self, created_before: datetime) -> int:
        return await self._delete_where(lambda r: r.created_at < created_before)

    async def size_bytes(self, row_overhead_bytes: int) -> int:
        return sum(
            len(r.original_text.encode("utf-8"))
            + len(r.translated_text.encode("utf-8"))
            + int(row_overhead_bytes)
            for r in self._rows.values()
        )

    async def stats(self) -> CacheStats:
        rows = list(self._rows.values())
        return CacheStats(
            total_entries=len(rows),
            by_engine=dict(Counter(r.engine for r in rows)),
            by_language=dict(Counter(r.target_language for r in rows)),
            average_quality=(sum(r.quality_score for r in rows) / len(rows)) if rows else 0.0,
        )


class TranslationCache:
    """Single source of truth for translated text.

    Keys are sha256(f"{text}:{language}"). Reads only see rows whose
    `expires_at` has not passed; retention depends on the engine that
    produced the translation. A better-scoring translation replaces a live
    lower-scoring one under the same id.
    """

    def __init__(
        self,
        store: TranslationCacheStore,
        config: TranslationCacheConfig | None = None,
        *,
        clock=_utcnow,
    ) -> None:
        self.store = store
        self.config = config or TranslationCacheConfig()
        self._clock = clock

    async def get(self, text: str, language: str) -> TranslationCacheEntry | None:
        entry = await self.store.get_live(content_hash(text, language), self._clock())
        if entry is None:
            return None
        try:
            await self.store.increment_usage(entry.id)
        except Exception as exc:
            logger.warning("cache usage update failed (entry_id=%s): %s", entry.id, exc)
            return entry
        return dataclasses.replace(entry, usage_count=entry.usage_count + 1)

    async def put(
        self,
        text: str,
        language: str,
        translated_text: str,
        engine: str,
        quality: float,
    ) -> str:
        key = content_hash(text, language)
        now = self._clock()
        existing = await self.store.get_live(key, now)
        if existing is not None and existing.quality_score >= float(quality):
            return existing.id

        ttl_days = self.config.ttl_days_for(engine)
        entry_id = await self.store.insert(
            TranslationCacheEntry(
                id=uuid.uuid4().hex,
                content_hash=key,
                original_text=text,
                target_language=language,
                translated_text=translated_text,
                engine=str(engine),
                quality_score=float(quality),
                usage_count=1,
                created_at=now,
                expires_at=now + timedelta(days=ttl_days),
            )
        )
        if existing is not None:
            logger.info(
                "cached translation upgraded (entry_id=%s, language=%s, engine=%s->%s)",
                entry_id,
                language,
                existing.engine,
                engine,
            )
        else:
            logger.debug(
                "translation cached (entry_id=%s, language=%s, engine=%s, ttl_days=%s)",
                entry_id,
                language,
                engine,
                ttl_days,
            )
        return entry_id

    async def estimate_size_mb(self) -> float:
        return await self.store.size_bytes(int(self.config.row_overhead_bytes)) / _MB

    async def purge_expired(self) -> int:
        deleted = await self.store.delete_expired(self._clock())
        if deleted:
            logger.info("expired translations purged (deleted=%s)", deleted)
        return deleted

    async def sweep(self) -> dict[str, int]:
        """Evict in three tiers, stopping once the cache fits `max_size_mb`."""
        cfg = self.config
        deleted = {"expired": 0, "low_usage": 0, "aged": 0}
        size_mb = await self.estimate_size_mb()
        if size_mb <= float(cfg.max_size_mb):
            return deleted

        now = self._clock()
        tiers = (
            ("expired", lambda: self.store.delete_expired(now)),
            (
                "low_usage",
                lambda: self.store.delete_low_usage(
                    int(cfg.min_usage_count), now - timedelta(days=int(cfg.low_usage_age_days))
                ),
            ),
            ("aged", lambda: self.store.delete_created_before(now - timedelta(days=int(cfg.max_age_days)))),
        )
        for name, run in tiers:
            deleted[name] = await run()
            size_mb = await self.estimate_size_mb()
            if size_mb <= float(cfg.max_size_mb):
                break

        logger.info(
            "translation cache swept (deleted=%s, size_mb=%.2f, max_size_mb=%s)",
            deleted,
            size_mb,
            cfg.max_size_mb,
        )
        if size_mb > float(cfg.max_size_mb):
            logger.warning(
                "translation cache still over budget after sweep (size_mb=%.2f, max_size_mb=%s)",
                size_mb,
                cfg.max_size_mb,
            )
        return deleted

    async def stats(self) -> CacheStats:
        stats = await self.store.stats()
        stats.estimated_size_mb = await self.estimate_size_mb()
        return stats


def get_cache_store(
    settings: Settings, pool: AsyncConnectionPool | None = None
) -> TranslationCacheStore:
    backend = str(settings.translation_cache.backend or "").strip().lower()
    if backend == "memory":
        return MemoryTranslationCacheStore()
    if backend == "postgres":
        if pool is None:
            raise ConfigurationError("postgres translation cache requires a database pool")
        return TranslationCacheRepository(pool)
    raise ConfigurationError(f"Unknown translation cache backend: {backend!r}")
