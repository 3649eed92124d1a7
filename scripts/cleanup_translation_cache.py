#!/usr/bin/env python3
"""Purge expired translations and evict down to the configured size budget."""

from __future__ import annotations

import argparse
import asyncio

from livetrans.config import Settings
from livetrans.repositories import DatabasePool
from livetrans.services.translation_cache import TranslationCache, get_cache_store


async def _run(*, stats_only: bool, max_size_mb: float | None) -> None:
    settings = Settings()
    if max_size_mb is not None:
        settings.translation_cache.max_size_mb = float(max_size_mb)
    pool = await DatabasePool.get_pool(settings)
    try:
        cache = TranslationCache(get_cache_store(settings, pool), settings.translation_cache)

        before = await cache.stats()
        print(f"Entries: {before.total_entries}")
        print(f"Estimated size: {before.estimated_size_mb:.2f} MB (budget {settings.translation_cache.max_size_mb} MB)")
        print(f"Average quality: {before.average_quality:.2f}")
        for engine, n in sorted(before.by_engine.items()):
            print(f"  engine {engine}: {n}")
        for language, n in sorted(before.by_language.items()):
            print(f"  language {language}: {n}")

        if stats_only:
            return

        expired = await cache.purge_expired()
        print(f"Purged expired: {expired}")
        deleted = await cache.sweep()
        print(f"Swept: {deleted}")
        after = await cache.estimate_size_mb()
        print(f"Estimated size after cleanup: {after:.2f} MB")
    finally:
        await DatabasePool.close()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--stats-only", action="store_true", help="Only print statistics")
    parser.add_argument("--max-size-mb", type=float, default=None, help="Override the size budget")
    args = parser.parse_args()
    asyncio.run(_run(stats_only=bool(args.stats_only), max_size_mb=args.max_size_mb))


if __name__ == "__main__":
    main()
