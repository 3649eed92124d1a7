"""Translation engine implementations, in rank order."""

from livetrans.translation.engines.base import TranslationEngine
from livetrans.translation.engines.google import GoogleTranslateEngine
from livetrans.translation.engines.llm import LLMTranslationEngine
from livetrans.translation.engines.local import LocalPassthroughEngine

__all__ = [
    "GoogleTranslateEngine",
    "LLMTranslationEngine",
    "LocalPassthroughEngine",
    "TranslationEngine",
]
