"""Acceptance checks applied to every engine output before it is used."""

from __future__ import annotations

from livetrans.exceptions import TranslationRejectedError
from livetrans.translation.languages import has_expected_script
from livetrans.utils.text import collapse_whitespace, is_punctuation_only

# Inputs at or below this length may legitimately translate to themselves.
IDENTITY_MIN_CHARS = 10


def rejection_reason(source: str, translated: str, language: str) -> str | None:
    """Return why `translated` is unusable, or None when it is acceptable."""
    out = collapse_whitespace(translated)
    if not out:
        return "empty"
    src = collapse_whitespace(source)
    if is_punctuation_only(src):
        return None
    if out.casefold() == src.casefold():
        # Names, numbers and short interjections often pass through unchanged.
        return "identical to input" if len(src) > IDENTITY_MIN_CHARS else None
    if not has_expected_script(out, language):
        return "missing target script"
    return None


def check_translation(source: str, translated: str, language: str, *, engine: str) -> str:
    """Return the stripped translation or raise TranslationRejectedError."""
    reason = rejection_reason(source, translated, language)
    if reason:
        raise TranslationRejectedError(engine, language, reason)
    return str(translated).strip()
