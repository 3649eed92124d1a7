from __future__ import annotations

import pytest

from audio_samples import chunks, silence_pcm, tone_pcm
from livetrans.config import VADConfig
from livetrans.exceptions import SessionClosedError
from livetrans.pipeline.segmenter import Segmenter
from livetrans.providers.vad.base import VADProvider, VADState
from livetrans.utils.audio import pcm16_to_float32, rms


class _BrokenVAD(VADProvider):
    def process_audio_chunk(self, chunk: bytes) -> VADState:
        raise RuntimeError("vad model crashed")

    def reset(self) -> None:
        return None


def _feed(segmenter: Segmenter, pcm: bytes) -> list:
    out = []
    for chunk in chunks(pcm):
        out.extend(segmenter.feed(chunk))
    return out


def test_segment_closes_after_trailing_silence() -> None:
    segmenter = Segmenter(VADConfig(threshold=0.02, smoothing_window=5))
    emitted = _feed(segmenter, silence_pcm(0.5) + tone_pcm(2.0) + silence_pcm(2.5))

    assert len(emitted) == 1
    seg = emitted[0]
    assert seg.start_offset_ms == 500
    # 2.0s of tone plus the 0.4s the smoothed energy stays above threshold.
    assert seg.end_offset_ms == 2900
    assert len(seg.raw_audio) == int(2.4 * 16000) * 2
    assert segmenter.flush() == []


def test_short_noise_burst_is_dropped() -> None:
    segmenter = Segmenter(VADConfig())
    assert _feed(segmenter, tone_pcm(0.3) + silence_pcm(2.5)) == []


def test_long_speech_is_force_split_without_losing_audio() -> None:
    segmenter = Segmenter(VADConfig(max_speech_s=15.0))
    emitted = _feed(segmenter, tone_pcm(16.0))
    assert [(s.start_offset_ms, s.end_offset_ms) for s in emitted] == [(0, 15000)]

    tail = segmenter.flush()
    assert [(s.start_offset_ms, s.end_offset_ms) for s in tail] == [(15000, 16000)]


def test_flush_emits_short_final_segment_and_closes() -> None:
    segmenter = Segmenter(VADConfig())
    assert _feed(segmenter, tone_pcm(0.5)) == []
    tail = segmenter.flush()
    assert len(tail) == 1
    assert tail[0].duration_ms == 500
    with pytest.raises(SessionClosedError):
        segmenter.feed(tone_pcm(0.1))


def test_vad_failure_switches_to_fixed_interval_mode() -> None:
    segmenter = Segmenter(VADConfig(fallback_interval_s=10.0), vad=_BrokenVAD())
    emitted = _feed(segmenter, tone_pcm(12.0))

    assert segmenter.fallback_mode is True
    assert [(s.start_offset_ms, s.end_offset_ms) for s in emitted] == [(0, 10000)]
    assert segmenter.stream_offset_ms == 12000


def test_near_silent_segment_is_dropped_in_fallback_mode() -> None:
    segmenter = Segmenter(VADConfig(fallback_interval_s=2.0), vad=_BrokenVAD())
    assert _feed(segmenter, silence_pcm(2.0)) == []


def test_quiet_onset_is_not_clipped_by_smoothing_lag() -> None:
    segmenter = Segmenter(VADConfig(threshold=0.02, smoothing_window=5))
    # RMS 0.035: the smoothed energy only crosses 0.02 on the third tone chunk.
    emitted = _feed(segmenter, silence_pcm(1.0) + tone_pcm(2.0, amplitude=0.05) + silence_pcm(2.0))

    assert len(emitted) == 1
    seg = emitted[0]
    assert seg.start_offset_ms == 1000
    assert len(seg.raw_audio) == (seg.end_offset_ms - seg.start_offset_ms) * 16 * 2
    assert rms(pcm16_to_float32(seg.raw_audio[:3200])) > 0.02
