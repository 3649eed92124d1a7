"""PCM helpers for 16-bit mono audio."""

from __future__ import annotations

import io
import wave

import numpy as np

PCM_SAMPLE_WIDTH = 2  # bytes, 16-bit
_INT16_SCALE = 32768.0


def pcm16_to_float32(pcm: bytes) -> np.ndarray:
    """Convert little-endian 16-bit PCM to float32 in [-1.0, 1.0]."""
    usable = len(pcm) - (len(pcm) % PCM_SAMPLE_WIDTH)
    if usable <= 0:
        return np.zeros(0, dtype=np.float32)
    samples = np.frombuffer(pcm[:usable], dtype="<i2").astype(np.float32)
    return samples / _INT16_SCALE


def rms(samples: np.ndarray) -> float:
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


def pcm_to_wav(pcm: bytes, sample_rate: int) -> bytes:
    """Wrap raw mono PCM frames into a standalone WAV byte buffer."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(PCM_SAMPLE_WIDTH)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm)
    return buf.getvalue()


def read_wav_pcm16(data: bytes) -> tuple[bytes, int]:
    """Return (mono 16-bit PCM, sample rate) from WAV bytes.

    Raises:
        ValueError: If the WAV is not 16-bit or cannot be read.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            sample_rate = wf.getframerate()
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            raw = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as exc:
        raise ValueError(f"Failed to read WAV audio: {exc}") from exc

    if sampwidth != PCM_SAMPLE_WIDTH:
        raise ValueError(f"expected 16-bit PCM, got {sampwidth * 8}-bit")
    if n_channels > 1:
        frames = np.frombuffer(raw, dtype="<i2").reshape(-1, n_channels)
        raw = frames.mean(axis=1).astype("<i2").tobytes()
    return raw, int(sample_rate)
