from __future__ import annotations

import asyncio

import pytest

from livetrans.config import TranslationCacheConfig, TranslationQueueConfig
from livetrans.models.translation import EngineName, JobStatus, TextGroup, TranslationJob
from livetrans.services.translation_cache import MemoryTranslationCacheStore, TranslationCache
from livetrans.translation.chain import TranslationEngineChain
from livetrans.translation.queue import TranslationQueueManager, calculate_priority
from translation_fakes import KO, SOURCE, ZH, FakeEngine

_FAST = dict(
    base_delay_ms=30,
    high_priority_delay_ms=20,
    per_language_delay_ms=5,
    max_language_delay_ms=20,
)


class _FakeTranscriptStore:
    def __init__(self) -> None:
        self.completed: list[str] = []

    async def mark_translation_completed(self, line_ids: list[str]) -> int:
        self.completed.extend(line_ids)
        return len(line_ids)


def _cache() -> TranslationCache:
    return TranslationCache(MemoryTranslationCacheStore(), TranslationCacheConfig(backend="memory"))


def _queue(engines, *, cache=None, store=None) -> TranslationQueueManager:  # noqa: ANN001
    return TranslationQueueManager(
        TranslationEngineChain(engines),
        cache or _cache(),
        transcript_store=store,
        config=TranslationQueueConfig(**_FAST),
    )


def test_calculate_priority() -> None:
    assert calculate_priority("ko") == 11
    assert calculate_priority("zh") == 9
    assert calculate_priority("hi") == 7
    assert calculate_priority("fr") == 5
    assert calculate_priority("ko", "session-1") == 21


def test_delay_grows_with_languages_and_shrinks_with_priority() -> None:
    queue = TranslationQueueManager(
        TranslationEngineChain([]), _cache(), config=TranslationQueueConfig()
    )
    low = TextGroup(text="x")
    low.add(TranslationJob(text="x", target_language="fr", priority=5))
    low.add(TranslationJob(text="x", target_language="de", priority=5))
    assert queue.delay_ms(low) == 1000 + 400

    high = TextGroup(text="x")
    high.add(TranslationJob(text="x", target_language="ko", priority=21))
    assert queue.delay_ms(high) == 500 + 200

    crowded = TextGroup(text="x")
    for i in range(15):
        crowded.add(TranslationJob(text="x", target_language=f"l{i}", priority=5))
    assert queue.delay_ms(crowded) == 1000 + 2000


@pytest.mark.asyncio
async def test_same_text_languages_share_one_batch_call() -> None:
    premium = FakeEngine(EngineName.PREMIUM, 0.95, batch_outputs={"ko": KO, "zh": ZH})
    store = _FakeTranscriptStore()
    cache = _cache()
    queue = _queue([premium], cache=cache, store=store)

    queue.add_job(SOURCE, "ko", session_id="s1", transcript_line_id="line-1")
    queue.add_job(SOURCE, "zh", session_id="s1", transcript_line_id="line-1")
    assert queue.get_stats()["pending_languages"] == 2

    await asyncio.sleep(0.2)
    await queue.drain()

    assert premium.batch_calls == [(SOURCE, ["ko", "zh"])]
    assert store.completed == ["line-1"]
    assert (await cache.get(SOURCE, "ko")).translated_text == KO
    assert (await cache.get(SOURCE, "zh")).engine == "premium"
    stats = queue.get_stats()
    assert stats["pending_texts"] == 0
    assert stats["jobs_completed"] == 2
    assert stats["batch_calls"] == 1


@pytest.mark.asyncio
async def test_batch_failure_falls_back_per_language() -> None:
    premium = FakeEngine(
        EngineName.PREMIUM,
        0.95,
        outputs={"ko": KO, "zh": ZH},
        batch_error=RuntimeError("batch endpoint down"),
    )
    queue = _queue([premium])
    seen: list[tuple[str, str]] = []
    queue.subscribe(lambda job, result: seen.append((job.target_language, result.engine.value)))

    queue.add_job(SOURCE, "ko")
    queue.add_job(SOURCE, "zh")
    await queue.drain()

    assert len(premium.batch_calls) == 1
    assert sorted(lang for _, lang in premium.calls) == ["ko", "zh"]
    assert sorted(seen) == [("ko", "premium"), ("zh", "premium")]
    assert queue.get_stats()["fallback_calls"] == 2


@pytest.mark.asyncio
async def test_cached_languages_are_not_translated_again() -> None:
    premium = FakeEngine(EngineName.PREMIUM, 0.95, batch_outputs={"ko": KO, "zh": ZH})
    cache = _cache()
    await cache.put(SOURCE, "ko", KO, "premium", 0.95)
    queue = _queue([premium], cache=cache)

    queue.add_job(SOURCE, "ko")
    queue.add_job(SOURCE, "zh")
    await queue.drain()

    assert premium.batch_calls == [(SOURCE, ["zh"])]
    assert queue.get_stats()["cache_hits"] == 1


@pytest.mark.asyncio
async def test_local_fallback_still_completes_jobs() -> None:
    premium = FakeEngine(EngineName.PREMIUM, 0.95, batch_outputs={})
    cache = _cache()
    queue = _queue([premium], cache=cache)
    captured: list[TranslationJob] = []
    queue.subscribe(lambda job, result: captured.append(job))

    queue.add_job(SOURCE, "ko")
    await queue.drain()

    assert [j.status for j in captured] == [JobStatus.COMPLETED]
    entry = await cache.get(SOURCE, "ko")
    assert entry.engine == "local"
    assert entry.translated_text == f"[한국어] {SOURCE}"


@pytest.mark.asyncio
async def test_clear_cancels_pending_groups() -> None:
    premium = FakeEngine(EngineName.PREMIUM, 0.95, batch_outputs={"ko": KO})
    queue = _queue([premium])

    queue.add_job(SOURCE, "ko")
    queue.add_job("Another sentence here.", "ko")
    assert queue.clear() == 2

    await asyncio.sleep(0.1)
    assert premium.batch_calls == []
    assert queue.get_stats()["pending_texts"] == 0


@pytest.mark.asyncio
async def test_add_job_requires_text_and_language() -> None:
    queue = _queue([])
    with pytest.raises(ValueError):
        queue.add_job("   ", "ko")


@pytest.mark.asyncio
async def test_low_quality_cache_entry_is_retranslated_and_upgraded() -> None:
    store = MemoryTranslationCacheStore()
    cache = TranslationCache(store, TranslationCacheConfig(backend="memory"))

    local_only = _queue([], cache=cache)
    local_only.add_job(SOURCE, "ko")
    await local_only.drain()
    [entry] = store.all_entries()
    assert entry.engine == "local"

    premium = FakeEngine(EngineName.PREMIUM, 0.95, batch_outputs={"ko": KO})
    queue = _queue([premium], cache=cache)
    seen: list[tuple[str, str]] = []
    queue.subscribe(lambda job, result: seen.append((result.text, result.engine.value)))

    queue.add_job(SOURCE, "ko")
    await queue.drain()

    assert premium.batch_calls == [(SOURCE, ["ko"])]
    assert seen == [(KO, "premium")]
    [upgraded] = store.all_entries()
    assert upgraded.id == entry.id
    assert upgraded.engine == "premium"
    assert upgraded.translated_text == KO
    stats = queue.get_stats()
    assert stats["cache_hits"] == 0
    assert stats["cache_upgrades"] == 1


@pytest.mark.asyncio
async def test_explicit_zero_priority_is_kept() -> None:
    queue = _queue([])
    captured: list[TranslationJob] = []
    queue.subscribe(lambda job, result: captured.append(job))

    queue.add_job(SOURCE, "ko", priority=0)
    queue.add_job(SOURCE, "zh")
    await queue.drain()

    assert {j.target_language: j.priority for j in captured} == {"ko": 0, "zh": 9}
