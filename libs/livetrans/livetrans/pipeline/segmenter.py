"""Cuts a live PCM stream into utterance-sized AudioSegments using a VAD."""

from __future__ import annotations

import logging
from collections import deque

from livetrans.config import VADConfig
from livetrans.exceptions import SessionClosedError
from livetrans.models.segment import AudioSegment
from livetrans.providers.registry import get_vad_provider
from livetrans.providers.vad.base import VADProvider
from livetrans.utils.audio import PCM_SAMPLE_WIDTH, pcm16_to_float32, rms

logger = logging.getLogger(__name__)


class Segmenter:
    """Single-writer segment state machine for one session.

    silence -> speech starts buffering; speech followed by
    `silence_duration_s` of silence closes the segment; speech longer than
    `max_speech_s` is force-closed and a new segment starts at once. If the
    VAD raises, the session permanently falls back to fixed
    `fallback_interval_s` slices.
    """

    def __init__(self, config: VADConfig, *, vad: VADProvider | None = None) -> None:
        self.config = config
        self.sample_rate = int(config.sample_rate)
        self.vad = vad or get_vad_provider(config.model_dump())

        self._offset_samples = 0
        self._buffer = bytearray()
        self._buffering = False
        self._segment_start_samples = 0
        # Byte length of the buffer up to the end of the last speech chunk.
        self._speech_end = 0
        self._fallback = False
        self._closed = False
        # Recent idle chunks as (start_samples, pcm, rms); the smoothed VAD
        # flips late on quiet onsets, so these are prepended on speech start.
        self._preroll: deque[tuple[int, bytes, float]] = deque(
            maxlen=max(0, int(config.smoothing_window) - 1)
        )

    @property
    def fallback_mode(self) -> bool:
        return self._fallback

    @property
    def stream_offset_ms(self) -> int:
        return self._samples_to_ms(self._offset_samples)

    def _samples_to_ms(self, samples: int) -> int:
        return int(samples * 1000 // self.sample_rate)

    def _bytes_to_s(self, n: int) -> float:
        return n / PCM_SAMPLE_WIDTH / self.sample_rate

    def _start_buffer(self, start_samples: int) -> None:
        self._buffer = bytearray()
        self._buffering = True
        self._segment_start_samples = start_samples
        self._speech_end = 0

    def _close(self, *, reason: str, enforce_min_duration: bool = True) -> list[AudioSegment]:
        pcm = bytes(self._buffer[: self._speech_end])
        start_samples = self._segment_start_samples
        self._buffer = bytearray()
        self._buffering = False
        self._speech_end = 0
        if not pcm:
            return []

        duration_s = self._bytes_to_s(len(pcm))
        start_ms = self._samples_to_ms(start_samples)
        end_ms = self._samples_to_ms(start_samples + len(pcm) // PCM_SAMPLE_WIDTH)
        if enforce_min_duration and duration_s < float(self.config.min_speech_s):
            logger.debug(
                "segment dropped as noise (reason=%s, start_ms=%s, duration_s=%.2f)",
                reason,
                start_ms,
                duration_s,
            )
            return []
        level = rms(pcm16_to_float32(pcm))
        if level < float(self.config.near_silence_rms):
            logger.debug(
                "segment dropped as near-silence (reason=%s, start_ms=%s, rms=%.4f)",
                reason,
                start_ms,
                level,
            )
            return []

        segment = AudioSegment(
            raw_audio=pcm,
            start_offset_ms=start_ms,
            end_offset_ms=end_ms,
            is_speech=True,
        )
        logger.debug(
            "segment emitted (reason=%s, start_ms=%s, end_ms=%s, rms=%.4f)",
            reason,
            start_ms,
            end_ms,
            level,
        )
        return [segment]

    def feed(self, chunk: bytes) -> list[AudioSegment]:
        """Consume one PCM chunk and return any segments it completed."""
        if self._closed:
            raise SessionClosedError("segmenter is closed")
        if not chunk:
            return []
        if len(chunk) % PCM_SAMPLE_WIDTH:
            chunk = chunk[: len(chunk) - len(chunk) % PCM_SAMPLE_WIDTH]

        chunk_start = self._offset_samples
        self._offset_samples += len(chunk) // PCM_SAMPLE_WIDTH

        if self._fallback:
            return self._feed_fixed_interval(chunk, chunk_start)

        try:
            state = self.vad.process_audio_chunk(chunk)
        except Exception as exc:
            logger.warning(
                "vad failed, switching to fixed-interval segmentation (interval_s=%s): %s",
                self.config.fallback_interval_s,
                exc,
            )
            self._fallback = True
            return self._feed_fixed_interval(chunk, chunk_start)

        emitted: list[AudioSegment] = []
        if state.is_speech:
            if not self._buffering:
                self._start_with_preroll(chunk_start)
            self._buffer += chunk
            self._speech_end = len(self._buffer)
            if self._bytes_to_s(len(self._buffer)) >= float(self.config.max_speech_s):
                emitted.extend(self._close(reason="max_speech"))
                self._start_buffer(self._offset_samples)
        elif self._buffering:
            self._buffer += chunk
            if state.silence_duration_s >= float(self.config.silence_duration_s):
                emitted.extend(self._close(reason="silence"))
        elif self._preroll.maxlen:
            self._preroll.append((chunk_start, chunk, rms(pcm16_to_float32(chunk))))
        return emitted

    def _start_with_preroll(self, chunk_start: int) -> None:
        # Only the unbroken run of loud chunks right before the onset is speech.
        lead: list[tuple[int, bytes, float]] = []
        for item in reversed(self._preroll):
            if item[2] <= float(self.config.threshold):
                break
            lead.append(item)
        self._preroll.clear()
        lead.reverse()
        self._start_buffer(lead[0][0] if lead else chunk_start)
        for _, pcm, _ in lead:
            self._buffer += pcm

    def _feed_fixed_interval(self, chunk: bytes, chunk_start: int) -> list[AudioSegment]:
        if not self._buffering:
            self._start_buffer(chunk_start)
        self._buffer += chunk
        self._speech_end = len(self._buffer)
        if self._bytes_to_s(len(self._buffer)) >= float(self.config.fallback_interval_s):
            return self._close(reason="interval")
        return []

    def flush(self) -> list[AudioSegment]:
        """Emit the in-flight speech buffer as a final segment and stop accepting audio."""
        self._closed = True
        if not self._buffering:
            return []
        return self._close(reason="flush", enforce_min_duration=False)
