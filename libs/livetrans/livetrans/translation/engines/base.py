"""Translation engine abstraction."""

from __future__ import annotations

from abc import ABC, abstractmethod

from livetrans.models.translation import EngineName


class TranslationEngine(ABC):
    """One rung of the engine chain.

    `translate` returns the raw translated text; quality checks and tier
    bookkeeping belong to the chain. Failures raise `ProviderError` (or any
    exception for transport problems), never return partial garbage.
    """

    name: EngineName
    quality: float
    supports_batch: bool = False

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def translate(self, text: str, language: str) -> str:
        ...

    async def translate_batch(self, text: str, languages: list[str]) -> dict[str, str]:
        """Translate into several languages in one call.

        May return a subset of `languages`; missing keys are retried by the
        chain individually.
        """
        raise NotImplementedError(f"{self.name.value} engine does not support batch translation")

    async def close(self) -> None:
        return None
