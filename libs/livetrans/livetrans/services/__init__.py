"""Reusable services."""

from livetrans.services.translation_cache import (
    MemoryTranslationCacheStore,
    TranslationCache,
    get_cache_store,
)

__all__ = ["MemoryTranslationCacheStore", "TranslationCache", "get_cache_store"]
