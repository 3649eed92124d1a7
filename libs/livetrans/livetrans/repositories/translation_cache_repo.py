from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from livetrans.exceptions import CacheStoreError
from livetrans.models.translation import CacheStats, TranslationCacheEntry
from livetrans.repositories.base import BaseRepository


class TranslationCacheStore(ABC):
    """Storage backend of the translation cache.

    `insert` must be atomic on `content_hash` and keep one row per key. A
    live row of equal or higher quality wins and its id is returned unchanged.
    An expired row, or a live row of lower quality, is overwritten in place
    under its existing id. `expires_at` never moves backwards.
    """

    @abstractmethod
    async def get_live(self, content_hash: str, now: datetime) -> TranslationCacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    async def increment_usage(self, entry_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, entry: TranslationCacheEntry) -> str:
        raise NotImplementedError

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    async def delete_low_usage(self, min_usage_count: int, created_before: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    async def delete_created_before(self, created_before: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    async def size_bytes(self, row_overhead_bytes: int) -> int:
        raise NotImplementedError

    @abstractmethod
    async def stats(self) -> CacheStats:
        raise NotImplementedError


def _row_to_entry(r: dict[str, Any]) -> TranslationCacheEntry:
    return TranslationCacheEntry(
        id=str(r["id"]),
        content_hash=str(r["content_hash"]),
        original_text=str(r["original_text"] or ""),
        target_language=str(r["target_language"]),
        translated_text=str(r["translated_text"] or ""),
        engine=str(r["engine"]),
        quality_score=float(r["quality_score"] or 0.0),
        usage_count=int(r["usage_count"] or 0),
        created_at=r["created_at"],
        expires_at=r["expires_at"],
    )


_COLUMNS = """
    id, content_hash, original_text, target_language, translated_text,
    engine, quality_score, usage_count, created_at, expires_at
"""


class TranslationCacheRepository(BaseRepository, TranslationCacheStore):
    """PostgreSQL store over the `translation_cache` table."""

    def __init__(self, pool: AsyncConnectionPool) -> None:
        super().__init__(pool)

    async def get_live(self, content_hash: str, now: datetime) -> TranslationCacheEntry | None:
        try:
            async with self.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        f"""
                        SELECT {_COLUMNS}
                        FROM translation_cache
                        WHERE content_hash=%s AND expires_at >= %s
                        """,
                        (content_hash, now),
                    )
                    row = await cur.fetchone()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache read failed: {exc}") from exc
        return _row_to_entry(row) if row else None

    async def increment_usage(self, entry_id: str) -> None:
        try:
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(
                        "UPDATE translation_cache SET usage_count = usage_count + 1 WHERE id=%s",
                        (entry_id,),
                    )
                await conn.commit()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache usage update failed: {exc}") from exc

    async def insert(self, entry: TranslationCacheEntry) -> str:
        entry_id = entry.id or uuid.uuid4().hex
        try:
            async with self.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        INSERT INTO translation_cache (
                          id, content_hash, original_text, target_language, translated_text,
                          engine, quality_score, usage_count, created_at, expires_at
                        )
                        VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                        ON CONFLICT (content_hash) DO UPDATE SET
                          original_text=EXCLUDED.original_text,
                          translated_text=EXCLUDED.translated_text,
                          engine=EXCLUDED.engine,
                          quality_score=EXCLUDED.quality_score,
                          usage_count=CASE
                            WHEN translation_cache.expires_at < EXCLUDED.created_at THEN EXCLUDED.usage_count
                            ELSE translation_cache.usage_count
                          END,
                          created_at=EXCLUDED.created_at,
                          expires_at=GREATEST(translation_cache.expires_at, EXCLUDED.expires_at)
                        WHERE translation_cache.expires_at < EXCLUDED.created_at
                           OR translation_cache.quality_score < EXCLUDED.quality_score
                        RETURNING id
                        """,
                        (
                            entry_id,
                            entry.content_hash,
                            entry.original_text,
                            entry.target_language,
                            entry.translated_text,
                            entry.engine,
                            float(entry.quality_score),
                            int(entry.usage_count),
                            entry.created_at,
                            entry.expires_at,
                        ),
                    )
                    row = await cur.fetchone()
                    if row is None:
                        # A live row of equal or better quality won; return it.
                        await cur.execute(
                            "SELECT id FROM translation_cache WHERE content_hash=%s",
                            (entry.content_hash,),
                        )
                        row = await cur.fetchone()
                await conn.commit()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache write failed: {exc}") from exc
        if row is None:
            raise CacheStoreError(f"translation cache row vanished (content_hash={entry.content_hash})")
        return str(row["id"])

    async def _delete(self, sql: str, params: tuple[Any, ...]) -> int:
        try:
            async with self.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql, params)
                    deleted = int(cur.rowcount or 0)
                await conn.commit()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache delete failed: {exc}") from exc
        return deleted

    async def delete_expired(self, now: datetime) -> int:
        return await self._delete("DELETE FROM translation_cache WHERE expires_at < %s", (now,))

    async def delete_low_usage(self, min_usage_count: int, created_before: datetime) -> int:
        return await self._delete(
            "DELETE FROM translation_cache WHERE usage_count < %s AND created_at < %s",
            (int(min_usage_count), created_before),
        )

    async def delete_created_before(self, created_before: datetime) -> int:
        return await self._delete(
            "DELETE FROM translation_cache WHERE created_at < %s", (created_before,)
        )

    async def size_bytes(self, row_overhead_bytes: int) -> int:
        try:
            async with self.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT
                          COALESCE(SUM(octet_length(original_text) + octet_length(translated_text)), 0) AS text_bytes,
                          COUNT(*) AS n
                        FROM translation_cache
                        """
                    )
                    row = await cur.fetchone()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache size query failed: {exc}") from exc
        if not row:
            return 0
        return int(row["text_bytes"] or 0) + int(row["n"] or 0) * int(row_overhead_bytes)

    async def stats(self) -> CacheStats:
        try:
            async with self.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        "SELECT COUNT(*) AS n, COALESCE(AVG(quality_score), 0) AS avg_q FROM translation_cache"
                    )
                    totals = await cur.fetchone() or {}
                    await cur.execute(
                        "SELECT engine, COUNT(*) AS n FROM translation_cache GROUP BY engine"
                    )
                    by_engine = await cur.fetchall()
                    await cur.execute(
                        "SELECT target_language, COUNT(*) AS n FROM translation_cache GROUP BY target_language"
                    )
                    by_language = await cur.fetchall()
        except psycopg.Error as exc:
            raise CacheStoreError(f"translation cache stats query failed: {exc}") from exc
        return CacheStats(
            total_entries=int(totals.get("n") or 0),
            by_engine={str(r["engine"]): int(r["n"]) for r in by_engine},
            by_language={str(r["target_language"]): int(r["n"]) for r in by_language},
            average_quality=float(totals.get("avg_q") or 0.0),
        )
