"""Deterministic last-resort engine: tags the source text with the target language."""

from __future__ import annotations

from livetrans.models.translation import EngineName
from livetrans.translation.engines.base import TranslationEngine
from livetrans.translation.languages import NATIVE_NAMES


class LocalPassthroughEngine(TranslationEngine):
    name = EngineName.LOCAL
    quality = 0.3

    async def translate(self, text: str, language: str) -> str:
        tag = NATIVE_NAMES.get(language) or language.upper()
        return f"[{tag}] {text}"
