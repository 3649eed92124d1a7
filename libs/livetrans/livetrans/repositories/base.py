from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import psycopg
from psycopg_pool import AsyncConnectionPool

from livetrans.config import Settings


class DatabasePool:
    """Process-wide connection pool."""

    _pool: AsyncConnectionPool | None = None

    @classmethod
    async def get_pool(cls, settings: Settings) -> AsyncConnectionPool:
        if cls._pool is None:
            pool = AsyncConnectionPool(
                conninfo=settings.database_url,
                min_size=1,
                max_size=10,
                open=False,
            )
            await pool.open()
            cls._pool = pool
        return cls._pool

    @classmethod
    async def close(cls) -> None:
        pool, cls._pool = cls._pool, None
        if pool is not None:
            await pool.close()


class BaseRepository:
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self.pool = pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        async with self.pool.connection() as conn:
            yield conn
