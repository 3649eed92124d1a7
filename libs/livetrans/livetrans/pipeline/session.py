"""One live session: audio in, finalized lines and translation jobs out."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from livetrans.config import Settings
from livetrans.exceptions import SessionClosedError
from livetrans.models.segment import AudioSegment, CandidateTranscript, CanonicalTranscriptLine
from livetrans.pipeline.reconciler import TranscriptReconciler
from livetrans.pipeline.segmenter import Segmenter
from livetrans.pipeline.transcription import TranscriptionClient
from livetrans.providers.asr.base import ASRProvider
from livetrans.providers.registry import get_asr_provider
from livetrans.providers.vad.base import VADProvider
from livetrans.translation.queue import TranslationQueueManager

logger = logging.getLogger(__name__)

# Characters of transcript tail passed to the recognizer as context.
_PROMPT_CONTEXT_CHARS = 200


class TranscriptStore(Protocol):
    async def insert_line(self, line: CanonicalTranscriptLine) -> None: ...


class LiveSession:
    """Feeds audio through segmenter -> transcription -> reconciler.

    Transcriptions run concurrently but their candidates reach the
    reconciler in segment order. Each finalized line is stored (when a
    transcript store is given) and queued for every target language.
    """

    def __init__(
        self,
        session_id: str,
        *,
        segmenter: Segmenter,
        transcription: TranscriptionClient,
        reconciler: TranscriptReconciler,
        queue: TranslationQueueManager | None = None,
        transcript_store: TranscriptStore | None = None,
        target_languages: list[str] | None = None,
    ) -> None:
        self.session_id = session_id
        self.segmenter = segmenter
        self.transcription = transcription
        self.reconciler = reconciler
        self.queue = queue
        self.transcript_store = transcript_store
        self.target_languages = list(target_languages or [])
        self._pending: asyncio.Queue[asyncio.Task[CandidateTranscript | None] | None] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._ended = False

    @classmethod
    def create(
        cls,
        session_id: str,
        settings: Settings,
        *,
        queue: TranslationQueueManager | None = None,
        transcript_store: TranscriptStore | None = None,
        asr: ASRProvider | None = None,
        vad: VADProvider | None = None,
    ) -> "LiveSession":
        asr_cfg = settings.asr
        return cls(
            session_id,
            segmenter=Segmenter(settings.vad, vad=vad),
            transcription=TranscriptionClient(
                asr or get_asr_provider(asr_cfg.model_dump()),
                sample_rate=settings.vad.sample_rate,
                language=asr_cfg.language,
                prompt=asr_cfg.prompt,
            ),
            reconciler=TranscriptReconciler(session_id, settings.reconciler),
            queue=queue,
            transcript_store=transcript_store,
            target_languages=settings.translation_queue.target_languages,
        )

    @property
    def ended(self) -> bool:
        return self._ended

    async def feed(self, chunk: bytes) -> list[AudioSegment]:
        """Push PCM16 audio; returns the segments it closed."""
        if self._ended:
            raise SessionClosedError(f"session {self.session_id} has ended")
        segments = self.segmenter.feed(chunk)
        self._schedule(segments)
        return segments

    async def end(self) -> list[CanonicalTranscriptLine]:
        """Flush audio, wait for every transcription, then close the transcript.

        Returns the lines finalized by closing.
        """
        if self._ended:
            return []
        self._ended = True
        self._schedule(self.segmenter.flush())
        if self._consumer is not None:
            await self._pending.put(None)
            await self._consumer
        lines = self.reconciler.close()
        await self._publish(lines)
        logger.info(
            "session ended (session_id=%s, lines=%s, stream_ms=%s)",
            self.session_id,
            len(self.reconciler.lines),
            self.segmenter.stream_offset_ms,
        )
        return lines

    def _schedule(self, segments: list[AudioSegment]) -> None:
        if not segments:
            return
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())
        context = self.reconciler.get_canonical_text()[-_PROMPT_CONTEXT_CHARS:] or None
        for segment in segments:
            task = asyncio.create_task(
                self.transcription.transcribe(segment, session_id=self.session_id, context=context)
            )
            self._pending.put_nowait(task)

    async def _consume(self) -> None:
        while True:
            task = await self._pending.get()
            if task is None:
                return
            try:
                candidate = await task
            except Exception:
                logger.exception("transcription task failed (session_id=%s)", self.session_id)
                continue
            if candidate is None:
                continue
            lines = self.reconciler.add_candidate(candidate)
            await self._publish(lines)

    async def _publish(self, lines: list[CanonicalTranscriptLine]) -> None:
        for line in lines:
            logger.info(
                "line finalized (session_id=%s, index=%s, text=%r)",
                self.session_id,
                line.index,
                line.text,
            )
            line_id: str | None = None
            if self.transcript_store is not None:
                try:
                    await self.transcript_store.insert_line(line)
                    line_id = line.id
                except Exception:
                    logger.exception(
                        "storing transcript line failed (session_id=%s, index=%s)",
                        self.session_id,
                        line.index,
                    )
            if self.queue is None:
                continue
            for language in self.target_languages:
                self.queue.add_job(
                    line.text,
                    language,
                    session_id=self.session_id,
                    transcript_line_id=line_id,
                )
