"""RMS energy VAD with a rolling smoothing window."""

from __future__ import annotations

from collections import deque

from livetrans.providers.vad.base import VADProvider, VADState
from livetrans.utils.audio import PCM_SAMPLE_WIDTH, pcm16_to_float32, rms


class EnergyVAD(VADProvider):
    """Flags speech while the mean RMS of the last `smoothing_window` chunks exceeds `threshold`.

    Durations advance by the number of samples seen, so results do not
    depend on how fast chunks are delivered.
    """

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        threshold: float = 0.02,
        smoothing_window: int = 5,
    ) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be > 0")
        self.sample_rate = int(sample_rate)
        self.threshold = float(threshold)
        self._energies: deque[float] = deque(maxlen=max(1, int(smoothing_window)))
        self._is_speech = False
        self._speech_s = 0.0
        self._silence_s = 0.0

    def reset(self) -> None:
        self._energies.clear()
        self._is_speech = False
        self._speech_s = 0.0
        self._silence_s = 0.0

    def process_audio_chunk(self, chunk: bytes) -> VADState:
        if len(chunk) % PCM_SAMPLE_WIDTH:
            raise ValueError(f"chunk length {len(chunk)} is not a multiple of the sample width")
        samples = pcm16_to_float32(chunk)
        chunk_s = samples.size / self.sample_rate

        self._energies.append(rms(samples))
        smoothed = sum(self._energies) / len(self._energies)
        speech_now = smoothed > self.threshold

        if speech_now and not self._is_speech:
            self._speech_s = 0.0
            self._silence_s = 0.0
        elif not speech_now and self._is_speech:
            self._silence_s = 0.0
        self._is_speech = speech_now

        if speech_now:
            self._speech_s += chunk_s
        else:
            self._silence_s += chunk_s

        return VADState(
            is_speech=speech_now,
            speech_duration_s=self._speech_s,
            silence_duration_s=self._silence_s,
            confidence=min(1.0, smoothed / (2 * self.threshold)),
        )
