from __future__ import annotations

import asyncio

import pytest

from audio_samples import chunks, silence_pcm, tone_pcm
from livetrans.config import TranslationCacheConfig, TranslationQueueConfig
from livetrans.exceptions import ProviderError, SessionClosedError
from livetrans.models.translation import EngineName
from livetrans.pipeline.session import LiveSession
from livetrans.providers.asr.base import ASRProvider, ASRResult
from livetrans.services.translation_cache import MemoryTranslationCacheStore, TranslationCache
from livetrans.translation.chain import TranslationEngineChain
from livetrans.translation.queue import TranslationQueueManager
from translation_fakes import KO, SOURCE, ZH, FakeEngine


class _ScriptedASR(ASRProvider):
    def __init__(self, replies: list[tuple[str | Exception, float]]) -> None:
        self.replies = list(replies)
        self.prompts: list[str | None] = []

    async def transcribe(
        self,
        audio: bytes,
        *,
        sample_rate: int,
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        self.prompts.append(prompt)
        reply, delay_s = self.replies.pop(0)
        if delay_s:
            await asyncio.sleep(delay_s)
        if isinstance(reply, Exception):
            raise reply
        return ASRResult(text=reply, confidence=0.9)


class _FakeLineStore:
    def __init__(self) -> None:
        self.lines: list[str] = []

    async def insert_line(self, line) -> None:  # noqa: ANN001
        self.lines.append(line.text)


def _two_utterances() -> bytes:
    return tone_pcm(2.0) + silence_pcm(2.5) + tone_pcm(2.0) + silence_pcm(2.5)


async def _stream(session: LiveSession, pcm: bytes) -> int:
    emitted = 0
    for chunk in chunks(pcm):
        emitted += len(await session.feed(chunk))
    return emitted


@pytest.mark.asyncio
async def test_candidates_reach_reconciler_in_segment_order(settings) -> None:
    # The first transcription finishes last.
    asr = _ScriptedASR([("Hello everyone.", 0.1), ("Today we will discuss AI.", 0.0)])
    store = _FakeLineStore()
    session = LiveSession.create("s1", settings, asr=asr, transcript_store=store)

    assert await _stream(session, _two_utterances()) == 2
    await session.end()

    assert [line.text for line in session.reconciler.lines] == [
        "Hello everyone.",
        "Today we will discuss AI.",
    ]
    assert store.lines == ["Hello everyone.", "Today we will discuss AI."]
    assert session.ended is True


@pytest.mark.asyncio
async def test_end_flushes_open_segment_and_finalizes_tail(settings) -> None:
    asr = _ScriptedASR([("and that is all", 0.0)])
    session = LiveSession.create("s1", settings, asr=asr)

    await _stream(session, tone_pcm(1.5))
    lines = await session.end()

    assert [line.text for line in lines] == ["and that is all"]
    with pytest.raises(SessionClosedError):
        await session.feed(tone_pcm(0.1))
    assert await session.end() == []


@pytest.mark.asyncio
async def test_failed_transcription_produces_no_line(settings) -> None:
    asr = _ScriptedASR([(ProviderError("openai_whisper", "HTTP 500"), 0.0), ("Second try works.", 0.0)])
    session = LiveSession.create("s1", settings, asr=asr)

    await _stream(session, _two_utterances())
    await session.end()

    assert [line.text for line in session.reconciler.lines] == ["Second try works."]


@pytest.mark.asyncio
async def test_finalized_lines_are_queued_for_every_target_language(settings) -> None:
    premium = FakeEngine(
        EngineName.PREMIUM, 0.95, batch_outputs={"ko": KO, "zh": ZH}
    )
    queue = TranslationQueueManager(
        TranslationEngineChain([premium]),
        TranslationCache(MemoryTranslationCacheStore(), TranslationCacheConfig(backend="memory")),
        config=TranslationQueueConfig(base_delay_ms=10, high_priority_delay_ms=10),
    )
    settings.translation_queue.target_languages = ["ko", "zh"]
    asr = _ScriptedASR([(SOURCE, 0.0)])
    session = LiveSession.create("s1", settings, asr=asr, queue=queue)

    await _stream(session, tone_pcm(2.0) + silence_pcm(2.5))
    await session.end()
    await queue.drain()

    assert [(text, sorted(langs)) for text, langs in premium.batch_calls] == [(SOURCE, ["ko", "zh"])]
    assert queue.get_stats()["jobs_completed"] == 2


@pytest.mark.asyncio
async def test_transcript_tail_is_passed_as_prompt_context(settings) -> None:
    settings.asr.prompt = ""
    asr = _ScriptedASR([("Hello everyone.", 0.0), ("Welcome back.", 0.0)])
    session = LiveSession.create("s1", settings, asr=asr)

    await _stream(session, tone_pcm(2.0) + silence_pcm(2.5))
    await asyncio.sleep(0.05)
    await _stream(session, tone_pcm(2.0) + silence_pcm(2.5))
    await session.end()

    assert asr.prompts == [None, "Hello everyone."]
