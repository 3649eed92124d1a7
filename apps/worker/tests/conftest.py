from __future__ import annotations

import sys
from pathlib import Path

import pytest

from livetrans.config import TranslationCacheConfig, TranslationQueueConfig
from livetrans.services.translation_cache import MemoryTranslationCacheStore, TranslationCache
from livetrans.translation.chain import TranslationEngineChain
from livetrans.translation.queue import TranslationQueueManager

_WORKER_ROOT = Path(__file__).resolve().parents[1]
if str(_WORKER_ROOT) not in sys.path:
    sys.path.insert(0, str(_WORKER_ROOT))


@pytest.fixture()
async def queue():
    manager = TranslationQueueManager(
        TranslationEngineChain([]),
        TranslationCache(MemoryTranslationCacheStore(), TranslationCacheConfig(backend="memory")),
        config=TranslationQueueConfig(base_delay_ms=60_000, high_priority_delay_ms=60_000),
    )
    yield manager
    manager.clear()
