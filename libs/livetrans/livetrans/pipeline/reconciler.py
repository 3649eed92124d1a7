"""Merges overlapping recognizer output into one sentence-bounded transcript.

The transcript is kept as two parts: committed lines, which never change
once emitted, and a pending tail that later candidates may still extend or
clean up. Every candidate goes through four steps:

1. duplicate rejection against recently accepted candidates;
2. overlap removal against the end of the transcript when it overlaps its
   predecessor in time;
3. noise stripping (recognizer hallucinations, prompt echoes, loops) on the tail;
4. sentence detection, which moves complete sentences from the tail into
   committed lines.
"""

from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Callable

from livetrans.config import ReconcilerConfig
from livetrans.exceptions import SessionClosedError
from livetrans.models.segment import CandidateTranscript, CanonicalTranscriptLine
from livetrans.utils.text import (
    collapse_repeats,
    collapse_whitespace,
    normalize_text,
    normalize_word,
    similarity,
    strip_phrases,
)

logger = logging.getLogger(__name__)

LineListener = Callable[[CanonicalTranscriptLine], object]

# Latin terminators need trailing whitespace (or end of text) so "3.5" and
# "e.g" do not split; CJK terminators always end a sentence.
_BOUNDARY_RE = re.compile(
    r"(?:[.!?…]+[\"'”’)\]]*(?=\s|$))|(?:[。！？]+[”’」』)）]*)"
)
_LAST_SENTENCE_SPLIT_RE = re.compile(r"[.!?。！？]+")
_ABBREVIATIONS = frozenset(
    {"mr", "mrs", "ms", "dr", "prof", "sr", "jr", "st", "vs", "etc", "e.g", "i.e", "u.s"}
)
_TOKEN_BEFORE_RE = re.compile(r"(\S+)$")
# "No." abbreviates "number" only in front of a number ("No. 5").
_NUMBER_PREFIXES = frozenset({"no", "nos"})
_NUMBER_AFTER_RE = re.compile(r"\s+\d")
# A single letter is an initial only inside a chain such as "J. R. Smith".
_INITIAL_AFTER_RE = re.compile(r"\s+[A-Z]\.")
_INITIAL_BEFORE_RE = re.compile(r"(?:^|\s)[A-Za-z]\.\s+[A-Za-z]$")

_MAX_TRACKED_CANDIDATES = 64


def clean_incomplete_words(text: str) -> str:
    """Join `hyphen- ated` splits and drop a trailing word cut off with a hyphen."""
    words = collapse_whitespace(text).split(" ") if text and text.strip() else []
    out: list[str] = []
    i = 0
    while i < len(words):
        word = words[i]
        if word.endswith("-") and len(word) > 1:
            if i == len(words) - 1:
                break
            nxt = words[i + 1]
            if not nxt.startswith("-"):
                out.append(word[:-1] + nxt)
                i += 2
                continue
        out.append(word)
        i += 1
    return " ".join(out)


class TranscriptReconciler:
    """Per-session transcript state. Not shared across sessions."""

    def __init__(self, session_id: str, config: ReconcilerConfig | None = None) -> None:
        self.session_id = session_id
        self.config = config or ReconcilerConfig()
        self._candidates: list[CandidateTranscript] = []
        self._starts: list[int] = []
        self._lines: list[CanonicalTranscriptLine] = []
        self._tail = ""
        self._latest_end_ms = 0
        self._listeners: list[LineListener] = []
        self._closed = False
        self._noise_phrases = [
            *self.config.hallucination_phrases,
            *self.config.prompt_echo_phrases,
        ]
        self._closing_res = [
            re.compile(rf"(?<!\w){re.escape(p.strip())}(?!\w)[.!?]*(?=\s|$)", re.IGNORECASE)
            for p in self.config.closing_phrases
            if p and p.strip()
        ]

    # ------------------------------------------------------------------ queries

    @property
    def lines(self) -> list[CanonicalTranscriptLine]:
        return list(self._lines)

    @property
    def closed(self) -> bool:
        return self._closed

    def get_canonical_text(self) -> str:
        parts = [line.text for line in self._lines]
        if self._tail:
            parts.append(self._tail)
        return " ".join(parts)

    def get_pending_tail_text(self) -> str:
        return self._tail

    def subscribe(self, listener: LineListener) -> Callable[[], None]:
        """Register a "line finalized" listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------ input

    def add_candidate(self, candidate: CandidateTranscript) -> list[CanonicalTranscriptLine]:
        """Merge one candidate and return the lines it finalized (possibly none)."""
        if self._closed:
            raise SessionClosedError(f"reconciler for session {self.session_id} is closed")

        text = collapse_whitespace(candidate.text)
        if not text:
            return []
        if self._is_duplicate(candidate, text):
            logger.debug(
                "duplicate candidate skipped (session_id=%s, start_ms=%s, text=%r)",
                self.session_id,
                candidate.start_offset_ms,
                text,
            )
            return []

        idx = bisect.bisect_right(self._starts, candidate.start_offset_ms)
        predecessor = self._candidates[idx - 1] if idx > 0 else None
        if idx < len(self._candidates):
            logger.debug(
                "late candidate (session_id=%s, start_ms=%s); merged against current tail",
                self.session_id,
                candidate.start_offset_ms,
            )
        self._candidates.insert(idx, candidate)
        self._starts.insert(idx, candidate.start_offset_ms)
        if len(self._candidates) > _MAX_TRACKED_CANDIDATES:
            del self._candidates[0]
            del self._starts[0]

        if predecessor is not None and candidate.start_offset_ms < predecessor.end_offset_ms:
            remainder = clean_incomplete_words(self._remove_overlap(self.get_canonical_text(), text))
            if len(remainder.strip()) < int(self.config.min_fragment_chars):
                remainder = ""
        else:
            remainder = text

        self._latest_end_ms = max(self._latest_end_ms, int(candidate.end_offset_ms))
        if remainder:
            self._tail = self._strip_noise(f"{self._tail} {remainder}")

        lines = self._finalize_sentences()
        self._notify(lines)
        return lines

    def close(self) -> list[CanonicalTranscriptLine]:
        """Finalize whatever is left in the tail and reject further candidates."""
        if self._closed:
            return []
        lines = self._finalize_sentences()
        rest = self._tail.strip()
        self._tail = ""
        if rest and any(ch.isalnum() for ch in rest):
            lines.append(self._commit(rest))
        self._closed = True
        self._notify(lines)
        return lines

    # ------------------------------------------------------------------ steps

    def _is_duplicate(self, candidate: CandidateTranscript, text: str) -> bool:
        window = int(self.config.duplicate_window_ms)
        threshold = float(self.config.duplicate_similarity)
        lo = bisect.bisect_left(self._starts, candidate.start_offset_ms - window + 1)
        hi = bisect.bisect_right(self._starts, candidate.start_offset_ms + window - 1)
        return any(
            similarity(existing.text, text) > threshold for existing in self._candidates[lo:hi]
        )

    def _remove_overlap(self, existing: str, new: str) -> str:
        new_words = new.split(" ")
        new_norm = [normalize_word(w) for w in new_words]
        existing_words = existing.split(" ") if existing else []
        window_size = len(new_words) + int(self.config.max_overlap_words)
        window_words = existing_words[-window_size:]
        window_norm = [normalize_word(w) for w in window_words]

        # Whole candidate already present at the end of the transcript.
        norm_new = normalize_text(new)
        if norm_new and f" {norm_new} " in f" {normalize_text(' '.join(window_words))} ":
            return ""

        # k-word suffix/prefix match, longest first.
        max_k = min(int(self.config.max_overlap_words), len(window_norm), len(new_norm))
        for k in range(max_k, 0, -1):
            if window_norm[-k:] != new_norm[:k]:
                continue
            if k == 1 and len(new_norm[0]) < int(self.config.min_overlap_word_chars):
                continue
            return " ".join(new_words[k:])

        # Phrase search: a leading phrase of the candidate inside the transcript tail.
        for size in range(min(4, len(new_norm)), 1, -1):
            for j in range(0, len(new_norm) // 2 + 1):
                phrase = new_norm[j : j + size]
                if len(phrase) < size or not all(phrase):
                    continue
                if _contains_sublist(window_norm, phrase):
                    return " ".join(new_words[j + size :])

        # Near-identical re-recognition of the transcript end.
        tail_chars = existing[-len(new) :] if existing else ""
        if tail_chars and similarity(tail_chars, new) > float(self.config.merge_similarity):
            return ""

        last_sentence = _last_sentence(existing)
        if last_sentence and len(last_sentence) >= int(self.config.min_sentence_chars):
            pattern = re.compile(re.escape(last_sentence) + r"[.!?]*", re.IGNORECASE)
            if pattern.search(new):
                return collapse_whitespace(pattern.sub(" ", new, count=1))
        return new

    def _strip_noise(self, text: str) -> str:
        return collapse_repeats(strip_phrases(text, self._noise_phrases))

    def _boundaries(self, text: str) -> list[int]:
        ends: list[int] = []
        for m in _BOUNDARY_RE.finditer(text):
            if m.group(0).startswith(".") and m.end() - m.start() == 1:
                if _is_abbreviation_dot(text, m.start(), m.end()):
                    continue
            ends.append(m.end())
        for pattern in self._closing_res:
            ends.extend(m.end() for m in pattern.finditer(text))
        return sorted(set(ends))

    def _finalize_sentences(self) -> list[CanonicalTranscriptLine]:
        lines: list[CanonicalTranscriptLine] = []
        min_chars = int(self.config.min_sentence_chars)
        while self._tail:
            end = next(
                (e for e in self._boundaries(self._tail) if len(self._tail[:e].strip()) >= min_chars),
                None,
            )
            if end is None:
                break
            sentence = self._tail[:end].strip()
            self._tail = self._tail[end:].strip()
            lines.append(self._commit(sentence))

        if len(self._tail) > int(self.config.force_boundary_chars):
            logger.debug(
                "forcing sentence boundary (session_id=%s, chars=%s)",
                self.session_id,
                len(self._tail),
            )
            lines.append(self._commit(self._tail))
            self._tail = ""
        return lines

    def _commit(self, text: str) -> CanonicalTranscriptLine:
        line = CanonicalTranscriptLine(
            text=text,
            finalized_at_ms=self._latest_end_ms,
            session_id=self.session_id,
            index=len(self._lines),
        )
        self._lines.append(line)
        return line

    def _notify(self, lines: list[CanonicalTranscriptLine]) -> None:
        for line in lines:
            for listener in list(self._listeners):
                try:
                    listener(line)
                except Exception:
                    logger.exception(
                        "line listener failed (session_id=%s, line_index=%s)",
                        self.session_id,
                        line.index,
                    )


def _is_abbreviation_dot(text: str, start: int, end: int) -> bool:
    head, rest = text[:start], text[end:]
    before = _TOKEN_BEFORE_RE.search(head)
    token = before.group(1).lower() if before else ""
    if token in _NUMBER_PREFIXES:
        return bool(_NUMBER_AFTER_RE.match(rest))
    if token in _ABBREVIATIONS:
        return True
    if len(token) == 1 and token.isalpha():
        return bool(_INITIAL_AFTER_RE.match(rest) or _INITIAL_BEFORE_RE.search(head))
    return False


def _contains_sublist(haystack: list[str], needle: list[str]) -> bool:
    n = len(needle)
    return any(haystack[i : i + n] == needle for i in range(len(haystack) - n + 1))


def _last_sentence(text: str) -> str:
    parts = [p.strip() for p in _LAST_SENTENCE_SPLIT_RE.split(text or "") if p.strip()]
    return parts[-1] if parts else ""
