"""Speech-to-text providers."""

from livetrans.providers.asr.base import ASRProvider, ASRResult, ASRSegment

__all__ = ["ASRProvider", "ASRResult", "ASRSegment"]
