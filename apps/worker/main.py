"""livetrans translation worker"""

import asyncio
import json
import logging

from redis.asyncio import Redis

from livetrans.config import Settings
from livetrans.repositories import DatabasePool, TranscriptRepository
from livetrans.services.translation_cache import TranslationCache, get_cache_store
from livetrans.translation.chain import build_engine_chain
from livetrans.translation.queue import TranslationQueueManager
from livetrans.utils.logging_setup import setup_logging
from handlers.job_handler import handle_job_payload
from recovery import recover_pending_transcripts

logger = logging.getLogger("livetrans.worker")


async def _sweep_loop(cache: TranslationCache, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        try:
            await cache.purge_expired()
            await cache.sweep()
        except Exception:
            logger.exception("translation cache sweep failed")


async def _stats_loop(queue: TranslationQueueManager, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        stats = queue.get_stats()
        if stats["pending_texts"] or stats["in_flight"]:
            logger.info(
                "queue stats (pending_texts=%s, pending_languages=%s, in_flight=%s, completed=%s, failed=%s)",
                stats["pending_texts"],
                stats["pending_languages"],
                stats["in_flight"],
                stats["jobs_completed"],
                stats["jobs_failed"],
            )


async def main():
    """Worker main entry point."""
    settings = Settings()
    setup_logging(settings)
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    pool = await DatabasePool.get_pool(settings)
    transcripts = TranscriptRepository(pool)
    cache = TranslationCache(get_cache_store(settings, pool), settings.translation_cache)
    chain = build_engine_chain(settings)
    queue = TranslationQueueManager(
        chain,
        cache,
        transcript_store=transcripts,
        config=settings.translation_queue,
    )

    logger.info(
        "Worker starting (redis=%s, queue_key=%s, engines=%s)",
        settings.redis_url,
        settings.job_queue_key,
        [e.name.value for e in chain.engines],
    )

    background = [
        asyncio.create_task(_sweep_loop(cache, settings.translation_cache.sweep_interval_s)),
        asyncio.create_task(_stats_loop(queue, settings.stats_interval_s)),
    ]
    try:
        try:
            recovered = await recover_pending_transcripts(
                repo=transcripts,
                queue=queue,
                target_languages=settings.translation_queue.target_languages,
            )
            if recovered:
                logger.info("startup recovery completed (recovered=%d)", recovered)
        except Exception:
            logger.exception("startup recovery failed")

        while True:
            item = await redis.brpop(settings.job_queue_key, timeout=5)
            if not item:
                continue
            _, raw = item
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("dropping malformed job payload (raw=%r)", raw[:200])
                continue
            handle_job_payload(payload, queue)
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await queue.drain()
        await chain.close()
        await DatabasePool.close()
        await redis.aclose()


if __name__ == "__main__":
    asyncio.run(main())
