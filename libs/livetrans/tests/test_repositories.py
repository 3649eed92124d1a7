from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import psycopg
import pytest

from livetrans.error_codes import ErrorCode
from livetrans.exceptions import CacheStoreError
from livetrans.models.segment import CanonicalTranscriptLine
from livetrans.models.translation import TranslationCacheEntry
from livetrans.repositories import TranscriptRepository, TranslationCacheRepository

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class _FakeCursor:
    def __init__(self, conn: "_FakeConn") -> None:
        self._conn = conn
        self.rowcount = conn.rowcount

    async def execute(self, sql: str, params: tuple[object, ...] | None = None) -> None:
        if self._conn.error is not None:
            raise self._conn.error
        self._conn.executed.append((" ".join(sql.split()), params))

    async def fetchone(self) -> object | None:
        return self._conn.fetchone_results.pop(0) if self._conn.fetchone_results else None

    async def fetchall(self) -> list[object]:
        return list(self._conn.fetchall_rows)

    async def __aenter__(self) -> "_FakeCursor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        return None


class _FakeConn:
    def __init__(self) -> None:
        self.executed: list[tuple[str, tuple[object, ...] | None]] = []
        self.fetchone_results: list[object | None] = []
        self.fetchall_rows: list[object] = []
        self.rowcount = 0
        self.commits = 0
        self.error: Exception | None = None

    def cursor(self, *args, **kwargs) -> _FakeCursor:  # noqa: ANN001
        return _FakeCursor(self)

    async def commit(self) -> None:
        self.commits += 1


class _FakePool:
    def __init__(self, conn: _FakeConn) -> None:
        self.conn = conn

    @asynccontextmanager
    async def connection(self):
        yield self.conn


def _entry() -> TranslationCacheEntry:
    return TranslationCacheEntry(
        id="mine",
        content_hash="h1",
        original_text="Hello",
        target_language="ko",
        translated_text="안녕",
        engine="premium",
        quality_score=0.95,
        usage_count=1,
        created_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )


@pytest.mark.asyncio
async def test_cache_insert_returns_new_id() -> None:
    conn = _FakeConn()
    conn.fetchone_results = [{"id": "mine"}]
    repo = TranslationCacheRepository(_FakePool(conn))

    assert await repo.insert(_entry()) == "mine"
    sql, params = conn.executed[0]
    assert "ON CONFLICT (content_hash) DO UPDATE" in sql
    assert "GREATEST(translation_cache.expires_at, EXCLUDED.expires_at)" in sql
    assert (
        "WHERE translation_cache.expires_at < EXCLUDED.created_at"
        " OR translation_cache.quality_score < EXCLUDED.quality_score"
    ) in sql
    assert "ELSE translation_cache.usage_count END" in sql
    assert params[1] == "h1"
    assert conn.commits == 1


@pytest.mark.asyncio
async def test_cache_insert_conflict_rereads_winner() -> None:
    conn = _FakeConn()
    conn.fetchone_results = [None, {"id": "winner"}]
    repo = TranslationCacheRepository(_FakePool(conn))

    assert await repo.insert(_entry()) == "winner"
    assert conn.executed[1] == ("SELECT id FROM translation_cache WHERE content_hash=%s", ("h1",))


@pytest.mark.asyncio
async def test_cache_get_live_filters_expired_rows() -> None:
    conn = _FakeConn()
    conn.fetchone_results = [
        {
            "id": "mine",
            "content_hash": "h1",
            "original_text": "Hello",
            "target_language": "ko",
            "translated_text": "안녕",
            "engine": "premium",
            "quality_score": 0.95,
            "usage_count": 3,
            "created_at": NOW,
            "expires_at": NOW + timedelta(days=30),
        }
    ]
    repo = TranslationCacheRepository(_FakePool(conn))

    entry = await repo.get_live("h1", NOW)

    assert entry is not None and entry.usage_count == 3
    sql, params = conn.executed[0]
    assert "expires_at >= %s" in sql
    assert params == ("h1", NOW)


@pytest.mark.asyncio
async def test_cache_store_errors_are_wrapped() -> None:
    conn = _FakeConn()
    conn.error = psycopg.OperationalError("connection lost")
    repo = TranslationCacheRepository(_FakePool(conn))
    with pytest.raises(CacheStoreError) as excinfo:
        await repo.get_live("h1", NOW)
    assert excinfo.value.error_code == ErrorCode.CACHE_FAILED
    assert isinstance(excinfo.value.__cause__, psycopg.OperationalError)


@pytest.mark.asyncio
async def test_cache_size_bytes_adds_row_overhead() -> None:
    conn = _FakeConn()
    conn.fetchone_results = [{"text_bytes": 1000, "n": 4}]
    repo = TranslationCacheRepository(_FakePool(conn))
    assert await repo.size_bytes(100) == 1400


@pytest.mark.asyncio
async def test_cache_delete_reports_rowcount() -> None:
    conn = _FakeConn()
    conn.rowcount = 7
    repo = TranslationCacheRepository(_FakePool(conn))
    assert await repo.delete_low_usage(2, NOW - timedelta(days=30)) == 7
    sql, params = conn.executed[0]
    assert sql == "DELETE FROM translation_cache WHERE usage_count < %s AND created_at < %s"
    assert params[0] == 2


@pytest.mark.asyncio
async def test_mark_translation_completed_updates_ids_once() -> None:
    conn = _FakeConn()
    conn.rowcount = 2
    repo = TranscriptRepository(_FakePool(conn))

    assert await repo.mark_translation_completed(["a", "b", "a", ""]) == 2
    sql, params = conn.executed[0]
    assert "id = ANY(%s)" in sql
    assert "translation_status <> 'completed'" in sql
    assert params == (["a", "b"],)


@pytest.mark.asyncio
async def test_mark_translation_completed_skips_empty_list() -> None:
    conn = _FakeConn()
    repo = TranscriptRepository(_FakePool(conn))
    assert await repo.mark_translation_completed([]) == 0
    assert conn.executed == []


@pytest.mark.asyncio
async def test_insert_line_and_list_pending() -> None:
    conn = _FakeConn()
    conn.fetchall_rows = [{"id": "l1", "session_id": "s1", "text": "Hello."}]
    repo = TranscriptRepository(_FakePool(conn))

    line = CanonicalTranscriptLine(text="Hello.", finalized_at_ms=1200, session_id="s1", index=0, id="l1")
    await repo.insert_line(line)
    rows = await repo.list_pending(limit=10)

    assert conn.executed[0][1] == ("l1", "s1", 0, "Hello.", 1200)
    assert "ON CONFLICT (id) DO NOTHING" in conn.executed[0][0]
    assert conn.executed[1][1] == (10,)
    assert rows == [{"id": "l1", "session_id": "s1", "text": "Hello."}]
