"""Debounced translation job queue.

Jobs for the same source text are grouped so that every target language is
translated by a single batch call. Each group waits for a short debounce
window (longer when more languages pile up) before it is dispatched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from livetrans.config import TranslationQueueConfig
from livetrans.exceptions import CacheStoreError, ProviderError
from livetrans.models.translation import (
    EngineName,
    JobStatus,
    TextGroup,
    TranslationCacheEntry,
    TranslationJob,
    TranslationResult,
)
from livetrans.translation.chain import TranslationEngineChain

logger = logging.getLogger(__name__)

TranslationListener = Callable[[TranslationJob, TranslationResult], object]


class TranslationCacheLike(Protocol):
    async def get(self, text: str, language: str) -> TranslationCacheEntry | None: ...

    async def put(
        self, text: str, language: str, translated_text: str, engine: str, quality: float
    ) -> str: ...


class TranscriptStoreLike(Protocol):
    async def mark_translation_completed(self, line_ids: list[str]) -> int: ...


def calculate_priority(
    language: str,
    session_id: str | None = None,
    *,
    priority_languages: list[str] | None = None,
) -> int:
    """Base 5, a bonus for priority languages (earlier is higher), +10 for live sessions."""
    ranked = list(priority_languages if priority_languages is not None else ["ko", "zh", "hi"])
    priority = 5
    if language in ranked:
        priority += (len(ranked) - ranked.index(language)) * 2
    if session_id:
        priority += 10
    return priority


class TranslationQueueManager:
    """Owns pending text groups and their debounce timers for one process."""

    def __init__(
        self,
        chain: TranslationEngineChain,
        cache: TranslationCacheLike,
        *,
        transcript_store: TranscriptStoreLike | None = None,
        config: TranslationQueueConfig | None = None,
    ) -> None:
        self.chain = chain
        self.cache = cache
        self.transcript_store = transcript_store
        self.config = config or TranslationQueueConfig()
        self._groups: dict[str, TextGroup] = {}
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._inflight: set[asyncio.Task[None]] = set()
        self._listeners: list[TranslationListener] = []
        self._counters: dict[str, int] = {
            "jobs_added": 0,
            "jobs_completed": 0,
            "jobs_failed": 0,
            "groups_dispatched": 0,
            "batch_calls": 0,
            "fallback_calls": 0,
            "cache_hits": 0,
            "cache_upgrades": 0,
        }

    # ------------------------------------------------------------------ intake

    def add_job(
        self,
        text: str,
        target_language: str,
        *,
        session_id: str | None = None,
        priority: int | None = None,
        transcript_line_id: str | None = None,
    ) -> str:
        """Queue one (text, language) translation and return the job id.

        Must be called from inside the running event loop.
        """
        key = str(text or "").strip()
        language = str(target_language or "").strip()
        if not key or not language:
            raise ValueError("text and target_language are required")

        loop = asyncio.get_running_loop()
        job = TranslationJob(
            text=key,
            target_language=language,
            session_id=session_id,
            transcript_line_id=transcript_line_id,
            priority=int(priority)
            if priority is not None
            else calculate_priority(
                language, session_id, priority_languages=self.config.priority_languages
            ),
        )
        group = self._groups.get(key)
        if group is None:
            group = TextGroup(text=key, created_at=loop.time())
            self._groups[key] = group
        group.add(job)
        self._counters["jobs_added"] += 1
        self._arm(key, group, loop)
        logger.debug(
            "translation job queued (job_id=%s, language=%s, priority=%s, languages=%s)",
            job.id,
            language,
            job.priority,
            len(group.languages),
        )
        return job.id

    def subscribe(self, listener: TranslationListener) -> Callable[[], None]:
        """Register a per-job result listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------ scheduling

    def delay_ms(self, group: TextGroup) -> int:
        cfg = self.config
        base = (
            cfg.high_priority_delay_ms
            if group.priority > int(cfg.high_priority_threshold)
            else cfg.base_delay_ms
        )
        extra = min(len(group.languages) * int(cfg.per_language_delay_ms), int(cfg.max_language_delay_ms))
        return int(base) + int(extra)

    def _arm(self, key: str, group: TextGroup, loop: asyncio.AbstractEventLoop) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        deadline = group.created_at + self.delay_ms(group) / 1000.0
        self._handles[key] = loop.call_later(max(0.0, deadline - loop.time()), self._fire, key)

    def _fire(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        group = self._groups.pop(key, None)
        if group is None:
            return
        task = asyncio.get_running_loop().create_task(self._dispatch(group))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    # ------------------------------------------------------------------ dispatch

    async def _dispatch(self, group: TextGroup) -> None:
        self._counters["groups_dispatched"] += 1
        for job in group.jobs:
            job.status = JobStatus.PROCESSING
        languages = group.ordered_languages()
        try:
            results = await self._translate_group(group.text, languages)
        except Exception:
            logger.exception("translation group failed (text=%r, languages=%s)", group.text[:40], languages)
            results = {}
        await self._finish(group, results)

    async def _translate_group(self, text: str, languages: list[str]) -> dict[str, TranslationResult]:
        results: dict[str, TranslationResult] = {}
        misses: list[str] = []
        # Low-quality hits are retried; they are served only if the retry fails.
        weak: dict[str, TranslationResult] = {}
        for language in languages:
            entry = await self._cache_get(text, language)
            if entry is None:
                misses.append(language)
                continue
            cached = TranslationResult(
                text=entry.translated_text,
                engine=EngineName(entry.engine),
                quality=float(entry.quality_score),
            )
            if cached.quality < float(self.config.min_cache_quality):
                self._counters["cache_upgrades"] += 1
                weak[language] = cached
                misses.append(language)
                continue
            self._counters["cache_hits"] += 1
            results[language] = cached
        if not misses:
            return results

        try:
            self._counters["batch_calls"] += 1
            translated = await self.chain.translate_batch(text, misses)
        except ProviderError as exc:
            logger.warning(
                "batch translation unavailable, falling back per language (languages=%s): %s",
                misses,
                exc,
            )
            translated = await self._fallback(text, misses)

        for language, result in translated.items():
            results[language] = result
            await self._cache_put(text, language, result)
        for language, cached in weak.items():
            results.setdefault(language, cached)
        return results

    async def _fallback(self, text: str, languages: list[str]) -> dict[str, TranslationResult]:
        semaphore = asyncio.Semaphore(int(self.config.fallback_concurrency))

        async def _one(language: str) -> tuple[str, TranslationResult | None]:
            async with semaphore:
                self._counters["fallback_calls"] += 1
                try:
                    return language, await self.chain.translate_one(text, language)
                except Exception:
                    logger.exception("translation failed (language=%s)", language)
                    return language, None

        pairs = await asyncio.gather(*(_one(lang) for lang in languages))
        return {lang: result for lang, result in pairs if result is not None}

    async def _cache_get(self, text: str, language: str) -> TranslationCacheEntry | None:
        try:
            return await self.cache.get(text, language)
        except CacheStoreError as exc:
            logger.warning("translation cache read failed (language=%s): %s", language, exc)
            return None

    async def _cache_put(self, text: str, language: str, result: TranslationResult) -> None:
        try:
            await self.cache.put(text, language, result.text, result.engine.value, result.quality)
        except CacheStoreError as exc:
            logger.warning("translation cache write failed (language=%s): %s", language, exc)

    async def _finish(self, group: TextGroup, results: dict[str, TranslationResult]) -> None:
        completed_lines: list[str] = []
        for job in group.jobs:
            result = results.get(job.target_language)
            if result is None:
                job.status = JobStatus.FAILED
                self._counters["jobs_failed"] += 1
                continue
            job.status = JobStatus.COMPLETED
            self._counters["jobs_completed"] += 1
            if job.transcript_line_id and job.transcript_line_id not in completed_lines:
                completed_lines.append(job.transcript_line_id)
            await self._notify(job, result)

        # a line counts as done only when every language queued for it succeeded
        failed_lines = {
            job.transcript_line_id for job in group.jobs if job.status == JobStatus.FAILED
        }
        completed_lines = [lid for lid in completed_lines if lid not in failed_lines]
        if completed_lines and self.transcript_store is not None:
            try:
                await self.transcript_store.mark_translation_completed(completed_lines)
            except Exception:
                logger.exception("marking transcripts translated failed (ids=%s)", completed_lines)

        logger.info(
            "translation group done (text=%r, languages=%s, engines=%s)",
            group.text[:40],
            sorted(results),
            sorted({r.engine.value for r in results.values()}),
        )

    async def _notify(self, job: TranslationJob, result: TranslationResult) -> None:
        for listener in list(self._listeners):
            try:
                out = listener(job, result)
                if inspect.isawaitable(out):
                    await out
            except Exception:
                logger.exception("translation listener failed (job_id=%s)", job.id)

    # ------------------------------------------------------------------ control

    def get_stats(self) -> dict[str, Any]:
        groups = {
            (key[:20] + "...") if len(key) > 20 else key: len(group.languages)
            for key, group in self._groups.items()
        }
        return {
            "pending_texts": len(self._groups),
            "pending_languages": sum(len(g.languages) for g in self._groups.values()),
            "in_flight": len(self._inflight),
            **self._counters,
            "groups": groups,
        }

    def clear(self) -> int:
        """Cancel every pending timer and drop queued groups; returns dropped job count."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        dropped = sum(len(g.jobs) for g in self._groups.values())
        self._groups.clear()
        if dropped:
            logger.info("translation queue cleared (dropped_jobs=%s)", dropped)
        return dropped

    async def drain(self) -> None:
        """Dispatch every pending group now and wait for in-flight work."""
        for key in list(self._groups):
            self._fire(key)
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
