"""Worker startup recovery helpers."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from livetrans.translation.queue import TranslationQueueManager

logger = logging.getLogger(__name__)


class PendingTranscriptSource(Protocol):
    async def list_pending(self, *, limit: int = 500) -> list[dict[str, Any]]: ...


async def recover_pending_transcripts(
    *,
    repo: PendingTranscriptSource,
    queue: TranslationQueueManager,
    target_languages: list[str],
    limit: int = 500,
) -> int:
    """Re-enqueue transcript lines whose translation never completed.

    Lines left `pending` by a crash or restart are queued again for every
    target language; cached translations make this cheap for lines that
    were partly done.
    """
    rows = await repo.list_pending(limit=limit)
    if not rows:
        return 0

    recovered = 0
    for row in rows:
        text = str(row.get("text") or "").strip()
        if not text:
            continue
        for language in target_languages:
            queue.add_job(
                text,
                language,
                session_id=row.get("session_id") or None,
                transcript_line_id=str(row["id"]),
            )
        recovered += 1

    logger.info(
        "pending transcripts re-enqueued (lines=%s, languages=%s)", recovered, target_languages
    )
    return recovered
