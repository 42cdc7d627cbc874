"""asyncpg connection pool and transactional helpers.

The pool is created once at app startup and handed to the stores that need
it; nothing in the engine reaches for a module-level pool.

Usage::

    pool = await init_pool(settings)
    async with get_connection(pool) as conn:
        rows = await conn.fetch("SELECT * FROM daily_outdoor_aggregates")
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

import asyncpg

from src.config import Settings, get_settings

logger = logging.getLogger("daylight.db")

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool:
    """Create the asyncpg connection pool and apply the schema.  Call once at startup."""
    s = settings or get_settings()
    if not s.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    pool = await asyncpg.create_pool(
        s.database_url,
        min_size=1,
        max_size=5,
        command_timeout=30,
    )
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    logger.info("Database pool initialized (min=1, max=5)")
    return pool


async def close_pool(pool: asyncpg.Pool | None) -> None:
    """Drain the pool.  Call at app shutdown."""
    if pool is not None:
        await pool.close()
        logger.info("Database pool closed")


@asynccontextmanager
async def get_connection(pool: asyncpg.Pool) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection wrapped in a transaction.

    Everything executed inside the block commits or rolls back together.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            yield conn


async def fetch(pool: asyncpg.Pool, query: str, *args: Any) -> list[asyncpg.Record]:
    async with get_connection(pool) as conn:
        return await conn.fetch(query, *args)


async def fetchrow(pool: asyncpg.Pool, query: str, *args: Any) -> asyncpg.Record | None:
    async with get_connection(pool) as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(pool: asyncpg.Pool, query: str, *args: Any) -> Any:
    async with get_connection(pool) as conn:
        return await conn.fetchval(query, *args)
