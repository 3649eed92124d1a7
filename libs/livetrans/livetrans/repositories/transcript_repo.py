from __future__ import annotations

from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from livetrans.models.segment import CanonicalTranscriptLine
from livetrans.repositories.base import BaseRepository


class TranscriptRepository(BaseRepository):
    def __init__(self, pool: AsyncConnectionPool) -> None:
        super().__init__(pool)

    async def insert_line(self, line: CanonicalTranscriptLine) -> None:
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO transcripts (
                      id, session_id, line_index, text, finalized_at_ms, translation_status
                    )
                    VALUES (%s,%s,%s,%s,%s,'pending')
                    ON CONFLICT (id) DO NOTHING
                    """,
                    (line.id, line.session_id, int(line.index), line.text, int(line.finalized_at_ms)),
                )
            await conn.commit()

    async def mark_translation_completed(self, line_ids: list[str]) -> int:
        ids = [str(i) for i in dict.fromkeys(line_ids or []) if i]
        if not ids:
            return 0
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE transcripts
                    SET translation_status='completed', updated_at=now()
                    WHERE id = ANY(%s) AND translation_status <> 'completed'
                    """,
                    (ids,),
                )
                updated = int(cur.rowcount or 0)
            await conn.commit()
        return updated

    async def list_pending(self, *, limit: int = 500) -> list[dict[str, Any]]:
        async with self.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, session_id, text
                    FROM transcripts
                    WHERE translation_status='pending'
                    ORDER BY created_at ASC, line_index ASC
                    LIMIT %s
                    """,
                    (int(limit),),
                )
                rows = await cur.fetchall()
        return [dict(r) for r in rows]
