from __future__ import annotations

from handlers.job_handler import handle_job_payload


async def test_translate_payload_queues_a_job(queue) -> None:
    job_id = handle_job_payload(
        {
            "type": "translate",
            "text": "Hello everyone.",
            "target_language": "ko",
            "session_id": "s1",
            "transcript_line_id": "line-1",
        },
        queue,
    )

    assert job_id
    stats = queue.get_stats()
    assert stats["pending_texts"] == 1
    assert stats["jobs_added"] == 1


async def test_type_defaults_to_translate_and_bad_priority_is_recalculated(queue) -> None:
    job_id = handle_job_payload(
        {"text": "Hello everyone.", "target_language": "zh", "priority": "urgent"}, queue
    )
    assert job_id
    assert queue.get_stats()["jobs_added"] == 1


async def test_clear_payload_drops_pending_groups(queue) -> None:
    handle_job_payload({"text": "One.", "target_language": "ko"}, queue)
    handle_job_payload({"text": "Two.", "target_language": "zh"}, queue)

    assert handle_job_payload({"type": "clear"}, queue) is None
    assert queue.get_stats()["pending_texts"] == 0


async def test_invalid_payloads_are_ignored(queue) -> None:
    assert handle_job_payload(["not", "an", "object"], queue) is None  # type: ignore[arg-type]
    assert handle_job_payload({"type": "explode", "text": "x", "target_language": "ko"}, queue) is None
    assert handle_job_payload({"text": "   ", "target_language": "ko"}, queue) is None
    assert handle_job_payload({"text": "Hello.", "target_language": ""}, queue) is None
    assert queue.get_stats()["jobs_added"] == 0
