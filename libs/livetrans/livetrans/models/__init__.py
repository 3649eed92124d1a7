"""Core data models for livetrans."""

from livetrans.models.segment import AudioSegment, CandidateTranscript, CanonicalTranscriptLine
from livetrans.models.translation import (
    CacheStats,
    EngineName,
    JobStatus,
    TextGroup,
    TranslationCacheEntry,
    TranslationJob,
    TranslationResult,
)

__all__ = [
    "AudioSegment",
    "CacheStats",
    "CandidateTranscript",
    "CanonicalTranscriptLine",
    "EngineName",
    "JobStatus",
    "TextGroup",
    "TranslationCacheEntry",
    "TranslationJob",
    "TranslationResult",
]
