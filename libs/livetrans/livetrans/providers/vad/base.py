"""VAD provider abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class VADState:
    is_speech: bool
    speech_duration_s: float
    silence_duration_s: float
    confidence: float


class VADProvider(ABC):
    """Streaming voice activity detector fed one PCM chunk at a time."""

    @abstractmethod
    def process_audio_chunk(self, chunk: bytes) -> VADState:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError
