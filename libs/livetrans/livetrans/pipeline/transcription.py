"""Turns AudioSegments into CandidateTranscripts via an ASR provider."""

from __future__ import annotations

import logging

from livetrans.exceptions import ProviderError
from livetrans.models.segment import AudioSegment, CandidateTranscript
from livetrans.providers.asr.base import ASRProvider

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Calls the STT engine once per segment and never raises on engine failure.

    A failed call, an empty result or a result shorter than `min_chars`
    yields None, so nothing reaches the reconciler.
    """

    def __init__(
        self,
        provider: ASRProvider,
        *,
        sample_rate: int,
        language: str | None = None,
        prompt: str | None = None,
        min_chars: int = 2,
    ) -> None:
        self.provider = provider
        self.sample_rate = int(sample_rate)
        self.language = language
        self.prompt = prompt or None
        self.min_chars = int(min_chars)

    async def transcribe(
        self,
        segment: AudioSegment,
        *,
        session_id: str,
        context: str | None = None,
    ) -> CandidateTranscript | None:
        # The recognizer gets the tail of the transcript so far as its prompt.
        prompt = " ".join(p for p in (self.prompt, context) if p) or None
        try:
            result = await self.provider.transcribe(
                segment.raw_audio,
                sample_rate=self.sample_rate,
                language=self.language,
                prompt=prompt,
            )
        except ProviderError as exc:
            logger.warning(
                "transcription failed (session_id=%s, segment_id=%s, start_ms=%s): %s",
                session_id,
                segment.id,
                segment.start_offset_ms,
                exc,
            )
            return None

        text = str(result.text or "").strip()
        if len(text) < self.min_chars:
            logger.debug(
                "transcription dropped (session_id=%s, segment_id=%s, chars=%s)",
                session_id,
                segment.id,
                len(text),
            )
            return None

        return CandidateTranscript(
            text=text,
            start_offset_ms=segment.start_offset_ms,
            end_offset_ms=segment.end_offset_ms,
            confidence=float(result.confidence),
            source_segment_id=segment.id,
        )
