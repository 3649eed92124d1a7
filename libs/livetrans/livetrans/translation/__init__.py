"""Translation queue, engine chain and quality checks."""

from livetrans.translation.chain import TranslationEngineChain, build_engine_chain
from livetrans.translation.queue import TranslationQueueManager, calculate_priority

__all__ = [
    "TranslationEngineChain",
    "TranslationQueueManager",
    "build_engine_chain",
    "calculate_priority",
]
