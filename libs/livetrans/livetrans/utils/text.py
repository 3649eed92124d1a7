"""Text comparison and cleanup helpers shared by the reconciler and the engine chain."""

from __future__ import annotations

import re
from collections.abc import Iterable

_WS_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s']", re.UNICODE)
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.!?;:。！？，])")
_LEADING_JUNK_RE = re.compile(r"^[\s,.;:!?-]+")

# A word repeated three or more times, or a 2/3-word phrase repeated twice or more.
_REPEAT_PATTERNS = (
    re.compile(r"\b(\w+)(?:\s+\1\b){2,}", re.IGNORECASE | re.UNICODE),
    re.compile(r"\b(\w+\s+\w+)(?:\s+\1\b)+", re.IGNORECASE | re.UNICODE),
    re.compile(r"\b(\w+\s+\w+\s+\w+)(?:\s+\1\b)+", re.IGNORECASE | re.UNICODE),
)


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", str(text or "")).strip()


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    return collapse_whitespace(_PUNCT_RE.sub(" ", str(text or "").lower()))


def normalize_word(word: str) -> str:
    return _PUNCT_RE.sub("", str(word or "").lower()).strip("'")


def levenshtein_distance(s1: str, s2: str) -> int:
    """Character-level edit distance (two-row dynamic programming)."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)
    if not s2:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1] over normalized text."""
    na = normalize_text(a)
    nb = normalize_text(b)
    longest = max(len(na), len(nb))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(na, nb) / longest


def strip_phrases(text: str, phrases: Iterable[str]) -> str:
    """Remove each phrase (case-insensitive, whole words) plus trailing punctuation."""
    out = str(text or "")
    for phrase in phrases:
        p = collapse_whitespace(phrase)
        if not p:
            continue
        body = r"\s+".join(re.escape(w) for w in p.split(" "))
        out = re.sub(rf"(?<!\w){body}(?!\w)[.!?,]*", " ", out, flags=re.IGNORECASE)
    out = collapse_whitespace(out)
    out = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", out)
    return _LEADING_JUNK_RE.sub("", out)


def collapse_repeats(text: str) -> str:
    """Collapse recognizer loops such as "go go go" or "thank you thank you"."""
    out = str(text or "")
    for pattern in _REPEAT_PATTERNS:
        out = pattern.sub(r"\1", out)
    return collapse_whitespace(out)


def is_punctuation_only(text: str) -> bool:
    stripped = str(text or "").strip()
    return bool(stripped) and not any(ch.isalnum() for ch in stripped)
