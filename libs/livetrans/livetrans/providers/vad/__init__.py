"""Voice activity detection providers."""

from livetrans.providers.vad.base import VADProvider, VADState

__all__ = ["VADProvider", "VADState"]
