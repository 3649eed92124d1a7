"""Segment and transcript models for the live speech pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AudioSegment:
    """A bounded slice of 16-bit mono PCM that likely holds one utterance."""

    raw_audio: bytes
    start_offset_ms: int
    end_offset_ms: int
    is_speech: bool = True
    id: str = field(default_factory=_new_id)

    @property
    def duration_ms(self) -> int:
        return int(self.end_offset_ms - self.start_offset_ms)


@dataclass(frozen=True)
class CandidateTranscript:
    """Raw recognizer output for one AudioSegment."""

    text: str
    start_offset_ms: int
    end_offset_ms: int
    confidence: float = 0.0
    source_segment_id: str | None = None
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class CanonicalTranscriptLine:
    """A finalized, deduplicated, sentence-terminated transcript line."""

    text: str
    finalized_at_ms: int
    session_id: str
    index: int = 0
    id: str = field(default_factory=_new_id)
