"""ASR Provider base class."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ASRSegment:
    """A recognizer sub-segment with timing relative to the submitted audio."""

    text: str
    start: float
    end: float
    confidence: float | None = None


@dataclass
class ASRResult:
    text: str
    confidence: float = 0.0
    segments: list[ASRSegment] = field(default_factory=list)
    language: str | None = None


class ASRProvider(ABC):
    """Abstract base class for ASR providers."""

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        *,
        sample_rate: int,
        language: str | None = None,
        prompt: str | None = None,
    ) -> ASRResult:
        """Transcribe one segment of 16-bit mono PCM.

        Args:
            audio: Raw PCM bytes.
            sample_rate: Sample rate of `audio`.
            language: Optional language hint.
            prompt: Optional context prompt (previous transcript tail).

        Returns:
            Recognized text with an overall confidence in [0, 1].
        """
        ...

    async def close(self) -> None:  # pragma: no cover
        return None
