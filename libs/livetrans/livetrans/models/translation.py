"""Translation job, grouping and cache models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EngineName(str, Enum):
    """Engine tiers in rank order."""

    PREMIUM = "premium"
    SECONDARY = "secondary"
    STATISTICAL = "statistical"
    LOCAL = "local"


@dataclass
class TranslationJob:
    text: str
    target_language: str
    session_id: str | None = None
    transcript_line_id: str | None = None
    priority: int = 0
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class TextGroup:
    """All pending target languages for one exact source text."""

    text: str
    languages: set[str] = field(default_factory=set)
    jobs: list[TranslationJob] = field(default_factory=list)
    priority: int = 0
    # Event loop time the group was opened; the debounce deadline counts from here.
    created_at: float = 0.0

    def add(self, job: TranslationJob) -> None:
        self.jobs.append(job)
        self.languages.add(job.target_language)
        self.priority = max(int(self.priority), int(job.priority))

    def ordered_languages(self) -> list[str]:
        """Languages in first-requested order."""
        seen: list[str] = []
        for job in self.jobs:
            if job.target_language not in seen:
                seen.append(job.target_language)
        return seen


@dataclass(frozen=True)
class TranslationResult:
    text: str
    engine: EngineName
    quality: float


@dataclass
class TranslationCacheEntry:
    id: str
    content_hash: str
    original_text: str
    target_language: str
    translated_text: str
    engine: str
    quality_score: float
    usage_count: int
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or _utcnow())


@dataclass
class CacheStats:
    total_entries: int = 0
    by_engine: dict[str, int] = field(default_factory=dict)
    by_language: dict[str, int] = field(default_factory=dict)
    average_quality: float = 0.0
    estimated_size_mb: float = 0.0
