"""Redis job payload handler."""

from __future__ import annotations

import logging
from typing import Any

from livetrans.translation.queue import TranslationQueueManager

logger = logging.getLogger(__name__)


def handle_job_payload(payload: dict[str, Any], queue: TranslationQueueManager) -> str | None:
    """Apply one intake payload to the queue.

    Returns the queued job id, or None for control messages and rejected
    payloads.
    """
    if not isinstance(payload, dict):
        logger.warning("ignoring non-object job payload (type=%s)", type(payload).__name__)
        return None

    kind = str(payload.get("type") or "translate").strip().lower()
    if kind == "clear":
        dropped = queue.clear()
        logger.info("translation queue cleared by request (dropped_jobs=%s)", dropped)
        return None
    if kind != "translate":
        logger.warning("ignoring job payload with unknown type (type=%s)", kind)
        return None

    text = str(payload.get("text") or "").strip()
    language = str(payload.get("target_language") or "").strip()
    if not text or not language:
        logger.warning("ignoring job payload without text/target_language (keys=%s)", sorted(payload))
        return None

    raw_priority = payload.get("priority")
    try:
        priority = int(raw_priority) if raw_priority is not None else None
    except (TypeError, ValueError):
        logger.warning("invalid job priority, recalculating (priority=%r)", raw_priority)
        priority = None

    return queue.add_job(
        text,
        language,
        session_id=payload.get("session_id") or None,
        priority=priority,
        transcript_line_id=payload.get("transcript_line_id") or None,
    )
