from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from livetrans.config import TranslationCacheConfig
from livetrans.exceptions import CacheStoreError, ConfigurationError
from livetrans.models.translation import TranslationCacheEntry
from livetrans.services.translation_cache import (
    MemoryTranslationCacheStore,
    TranslationCache,
    content_hash,
    get_cache_store,
)

_MB = 1024 * 1024
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _NoUsageStore(MemoryTranslationCacheStore):
    async def increment_usage(self, entry_id: str) -> None:
        raise CacheStoreError("read-only replica")


def _cache(store=None, clock=None, **cfg) -> TranslationCache:  # noqa: ANN001
    return TranslationCache(
        store if store is not None else MemoryTranslationCacheStore(),
        TranslationCacheConfig(backend="memory", **cfg),
        clock=clock or _Clock(T0),
    )


def _row(key: str, *, created: datetime, expires: datetime, usage: int = 1) -> TranslationCacheEntry:
    # 5 + 5 bytes of text per row
    return TranslationCacheEntry(
        id=key,
        content_hash=key,
        original_text="abcde",
        target_language="ko",
        translated_text="fghij",
        engine="premium",
        quality_score=0.95,
        usage_count=usage,
        created_at=created,
        expires_at=expires,
    )


def test_content_hash_is_sha256_of_text_and_language() -> None:
    assert content_hash("hi", "ko") == content_hash("hi", "ko")
    assert content_hash("hi", "ko") != content_hash("hi", "zh")
    assert len(content_hash("hi", "ko")) == 64


@pytest.mark.asyncio
async def test_put_then_get_increments_usage() -> None:
    cache = _cache()
    entry_id = await cache.put("Hello", "ko", "안녕", "premium", 0.95)

    hit = await cache.get("Hello", "ko")
    assert hit is not None
    assert hit.id == entry_id
    assert hit.usage_count == 2
    assert (await cache.get("Hello", "ko")).usage_count == 3
    assert await cache.get("Hello", "zh") is None


@pytest.mark.asyncio
async def test_put_is_idempotent_under_concurrency() -> None:
    store = MemoryTranslationCacheStore()
    cache = _cache(store)

    ids = await asyncio.gather(
        *(cache.put("Hello", "ko", f"안녕 {i}", "premium", 0.95) for i in range(5))
    )

    assert len(set(ids)) == 1
    assert len(store) == 1
    assert await cache.put("Hello", "ko", "다른 번역", "local", 0.3) == ids[0]


@pytest.mark.asyncio
async def test_usage_update_failure_still_returns_hit() -> None:
    cache = _cache(_NoUsageStore())
    await cache.put("Hello", "ko", "안녕", "premium", 0.95)

    hit = await cache.get("Hello", "ko")
    assert hit is not None
    assert hit.usage_count == 1


@pytest.mark.asyncio
async def test_retention_depends_on_engine() -> None:
    store = MemoryTranslationCacheStore()
    cache = _cache(store)
    await cache.put("a", "ko", "가", "premium", 0.95)
    await cache.put("b", "ko", "나", "secondary", 0.9)
    await cache.put("c", "ko", "다", "statistical", 0.75)
    await cache.put("d", "ko", "라", "local", 0.3)

    ttl = {e.engine: e.expires_at - e.created_at for e in store.all_entries()}
    assert ttl == {
        "premium": timedelta(days=30),
        "secondary": timedelta(days=21),
        "statistical": timedelta(days=14),
        "local": timedelta(days=7),
    }
    assert ttl["premium"] > ttl["local"]


@pytest.mark.asyncio
async def test_unknown_engine_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        await _cache().put("a", "ko", "가", "mystery", 0.5)


@pytest.mark.asyncio
async def test_expired_entry_is_replaced_without_shrinking_expiry() -> None:
    clock = _Clock(T0)
    store = MemoryTranslationCacheStore()
    cache = _cache(store, clock)
    first_id = await cache.put("Hello", "ko", "안녕", "local", 0.3)

    clock.now = T0 + timedelta(days=8)
    assert await cache.get("Hello", "ko") is None

    second_id = await cache.put("Hello", "ko", "안녕하세요", "premium", 0.95)
    [entry] = store.all_entries()
    assert second_id == first_id
    assert entry.translated_text == "안녕하세요"
    assert entry.expires_at == clock.now + timedelta(days=30)


@pytest.mark.asyncio
async def test_higher_quality_put_upgrades_live_entry_in_place() -> None:
    clock = _Clock(T0)
    store = MemoryTranslationCacheStore()
    cache = _cache(store, clock)
    first_id = await cache.put("Hello", "ko", "[한국어] Hello", "local", 0.3)
    await cache.get("Hello", "ko")

    clock.now = T0 + timedelta(days=1)
    second_id = await cache.put("Hello", "ko", "안녕하세요", "premium", 0.95)

    [entry] = store.all_entries()
    assert second_id == first_id
    assert entry.engine == "premium"
    assert entry.translated_text == "안녕하세요"
    assert entry.usage_count == 2
    assert entry.expires_at == clock.now + timedelta(days=30)

    assert await cache.put("Hello", "ko", "[한국어] Hello", "local", 0.3) == first_id
    [entry] = store.all_entries()
    assert entry.engine == "premium"
    assert entry.expires_at == clock.now + timedelta(days=30)

@pytest.mark.asyncio
async def test_sweep_is_noop_within_budget() -> None:
    store = MemoryTranslationCacheStore()
    await store.insert(_row("old", created=T0 - timedelta(days=90), expires=T0 - timedelta(days=1)))
    cache = _cache(store, max_size_mb=1.0)
    assert await cache.sweep() == {"expired": 0, "low_usage": 0, "aged": 0}
    assert len(store) == 1


@pytest.mark.asyncio
async def test_sweep_stops_after_first_sufficient_tier() -> None:
    store = MemoryTranslationCacheStore()
    await store.insert(_row("expired", created=T0 - timedelta(days=10), expires=T0 - timedelta(days=1)))
    await store.insert(_row("low", created=T0 - timedelta(days=40), expires=T0 + timedelta(days=1)))
    await store.insert(_row("aged", created=T0 - timedelta(days=70), expires=T0 + timedelta(days=1), usage=5))
    await store.insert(_row("fresh", created=T0, expires=T0 + timedelta(days=30)))
    cache = _cache(store, max_size_mb=30 / _MB, row_overhead_bytes=0)

    assert await cache.estimate_size_mb() == pytest.approx(40 / _MB)
    assert await cache.sweep() == {"expired": 1, "low_usage": 0, "aged": 0}
    assert sorted(e.id for e in store.all_entries()) == ["aged", "fresh", "low"]


@pytest.mark.asyncio
async def test_sweep_evicts_tiers_in_order_until_within_budget() -> None:
    store = MemoryTranslationCacheStore()
    await store.insert(_row("expired", created=T0 - timedelta(days=10), expires=T0 - timedelta(days=1)))
    await store.insert(_row("low", created=T0 - timedelta(days=40), expires=T0 + timedelta(days=1)))
    await store.insert(_row("aged", created=T0 - timedelta(days=70), expires=T0 + timedelta(days=1), usage=5))
    await store.insert(_row("fresh", created=T0, expires=T0 + timedelta(days=30)))
    cache = _cache(store, max_size_mb=15 / _MB, row_overhead_bytes=0)

    before = await cache.estimate_size_mb()
    deleted = await cache.sweep()
    after = await cache.estimate_size_mb()

    assert deleted == {"expired": 1, "low_usage": 1, "aged": 1}
    assert [e.id for e in store.all_entries()] == ["fresh"]
    assert after < before


@pytest.mark.asyncio
async def test_purge_expired_and_stats() -> None:
    store = MemoryTranslationCacheStore()
    await store.insert(_row("expired", created=T0 - timedelta(days=10), expires=T0 - timedelta(days=1)))
    cache = _cache(store, row_overhead_bytes=0)
    await cache.put("Hello", "zh", "你好", "statistical", 0.75)

    stats = await cache.stats()
    assert stats.total_entries == 2
    assert stats.by_engine == {"premium": 1, "statistical": 1}
    assert stats.by_language == {"ko": 1, "zh": 1}
    assert stats.average_quality == pytest.approx(0.85)
    assert stats.estimated_size_mb > 0

    assert await cache.purge_expired() == 1
    assert (await cache.stats()).total_entries == 1


def test_get_cache_store_selects_backend(settings) -> None:
    settings.translation_cache.backend = "memory"
    assert isinstance(get_cache_store(settings), MemoryTranslationCacheStore)

    settings.translation_cache.backend = "postgres"
    with pytest.raises(ConfigurationError):
        get_cache_store(settings, None)


@pytest.mark.asyncio
async def test_repeated_sweep_deletes_nothing_more() -> None:
    store = MemoryTranslationCacheStore()
    await store.insert(_row("expired", created=T0 - timedelta(days=10), expires=T0 - timedelta(days=1)))
    await store.insert(_row("low", created=T0 - timedelta(days=40), expires=T0 + timedelta(days=1)))
    await store.insert(_row("aged", created=T0 - timedelta(days=70), expires=T0 + timedelta(days=1), usage=5))
    await store.insert(_row("fresh", created=T0, expires=T0 + timedelta(days=30)))
    # Smaller than a single row, so every tier runs on both passes.
    cache = _cache(store, max_size_mb=5 / _MB, row_overhead_bytes=0)

    assert await cache.sweep() == {"expired": 1, "low_usage": 1, "aged": 1}
    assert await cache.sweep() == {"expired": 0, "low_usage": 0, "aged": 0}
    assert [e.id for e in store.all_entries()] == ["fresh"]


@pytest.mark.asyncio
async def test_recently_used_entry_survives_eviction_of_expired_one() -> None:
    clock = _Clock(T0 - timedelta(days=1))
    store = MemoryTranslationCacheStore()
    cache = _cache(store, clock, max_size_mb=5 / _MB, row_overhead_bytes=0)
    await store.insert(_row("expired", created=T0 - timedelta(days=10), expires=T0 - timedelta(seconds=1), usage=50))
    busy_id = await cache.put("Hello", "ko", "안녕", "premium", 0.95)

    clock.now = T0
    for _ in range(3):
        assert await cache.get("Hello", "ko") is not None

    deleted = await cache.sweep()

    assert deleted["expired"] == 1
    [entry] = store.all_entries()
    assert entry.id == busy_id
    assert entry.usage_count == 4
    assert (await cache.get("Hello", "ko")).translated_text == "안녕"
