from __future__ import annotations

import argparse
import asyncio
import uuid
from pathlib import Path

from livetrans.config import Settings
from livetrans.models.segment import CanonicalTranscriptLine
from livetrans.models.translation import TranslationJob, TranslationResult
from livetrans.pipeline import LiveSession
from livetrans.services.translation_cache import MemoryTranslationCacheStore, TranslationCache
from livetrans.translation.chain import build_engine_chain
from livetrans.translation.queue import TranslationQueueManager
from livetrans.utils.audio import PCM_SAMPLE_WIDTH, read_wav_pcm16
from livetrans.utils.logging_setup import setup_logging


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream a WAV file through a live session.")
    parser.add_argument("--wav", required=True, help="Path to a PCM16 WAV file")
    parser.add_argument("--session-id", default=None, help="Session id (defaults to random uuid)")
    parser.add_argument("--chunk-ms", type=int, default=100, help="Audio slice fed per step")
    parser.add_argument("--realtime", action="store_true", help="Sleep between slices like a live mic")
    parser.add_argument(
        "--languages",
        default=None,
        help="Comma separated target languages (default: TRANSLATION_QUEUE_TARGET_LANGUAGES)",
    )
    parser.add_argument("--no-translate", action="store_true", help="Only print transcript lines")
    return parser.parse_args()


async def _run() -> int:
    args = _parse_args()
    wav_path = Path(args.wav)
    if not wav_path.exists():
        raise SystemExit(f"WAV not found: {wav_path}")
    pcm, sample_rate = read_wav_pcm16(wav_path.read_bytes())

    settings = Settings()
    setup_logging(settings)
    settings.vad.sample_rate = int(sample_rate)
    if args.languages:
        settings.translation_queue.target_languages = [
            s.strip() for s in str(args.languages).split(",") if s.strip()
        ]

    chain = None
    queue = None
    if not args.no_translate:
        chain = build_engine_chain(settings)
        cache = TranslationCache(MemoryTranslationCacheStore(), settings.translation_cache)
        queue = TranslationQueueManager(chain, cache, config=settings.translation_queue)

        def _print_translation(job: TranslationJob, result: TranslationResult) -> None:
            print(f"  [{job.target_language}/{result.engine.value}] {result.text}")

        queue.subscribe(_print_translation)

    session_id = str(args.session_id or uuid.uuid4())
    session = LiveSession.create(session_id, settings, queue=queue)

    def _print_line(line: CanonicalTranscriptLine) -> None:
        print(f"{line.finalized_at_ms / 1000:8.2f}s  {line.text}")

    session.reconciler.subscribe(_print_line)

    step = max(1, int(sample_rate * args.chunk_ms / 1000)) * PCM_SAMPLE_WIDTH
    try:
        for offset in range(0, len(pcm), step):
            await session.feed(pcm[offset : offset + step])
            if args.realtime:
                await asyncio.sleep(args.chunk_ms / 1000)
        await session.end()
        if queue is not None:
            await queue.drain()
    finally:
        if chain is not None:
            await chain.close()
        await session.transcription.provider.close()

    print(f"session_id={session_id} lines={len(session.reconciler.lines)}")
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
