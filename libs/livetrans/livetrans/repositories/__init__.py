"""PostgreSQL repository layer."""

from livetrans.repositories.base import BaseRepository, DatabasePool
from livetrans.repositories.transcript_repo import TranscriptRepository
from livetrans.repositories.translation_cache_repo import (
    TranslationCacheRepository,
    TranslationCacheStore,
)

__all__ = [
    "BaseRepository",
    "DatabasePool",
    "TranscriptRepository",
    "TranslationCacheRepository",
    "TranslationCacheStore",
]
