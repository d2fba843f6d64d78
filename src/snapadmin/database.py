"""
SnapAdmin Database Connection

Only used by the postgres secret store. Connections should use TLS in
production (``DATABASE_SSL_MODE``).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg
from asyncpg import Connection, Pool

from snapadmin.config import get_settings

logger = logging.getLogger(__name__)

USER_SECRETS_SCHEMA = """
CREATE TABLE IF NOT EXISTS user_secrets (
    user_id TEXT PRIMARY KEY,
    user_secret TEXT NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

# Global connection pool
_pool: Pool | None = None


async def create_pool() -> Pool:
    """Create database connection pool."""
    settings = get_settings()

    pool = await asyncpg.create_pool(
        host=settings.database_host,
        port=settings.database_port,
        database=settings.database_name,
        user=settings.database_user,
        password=settings.database_password,
        min_size=1,
        max_size=5,
        command_timeout=30,
        ssl=settings.database_ssl_mode,
    )

    logger.info(
        f"Database pool created: {settings.database_host}:{settings.database_port}"
        f"/{settings.database_name}"
    )
    return pool


async def get_pool() -> Pool:
    """Get or create database connection pool."""
    global _pool
    if _pool is None:
        _pool = await create_pool()
    return _pool


async def close_pool() -> None:
    """Close database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


@asynccontextmanager
async def get_connection() -> AsyncGenerator[Connection, None]:
    """Get database connection from pool."""
    pool = await get_pool()
    async with pool.acquire() as connection:
        yield connection


async def ensure_schema() -> None:
    """Create the user_secrets table if it does not exist."""
    async with get_connection() as conn:
        await conn.execute(USER_SECRETS_SCHEMA)
    logger.info("user_secrets table ready")


async def check_connection() -> bool:
    """Check if database is reachable."""
    try:
        async with get_connection() as conn:
            result = await conn.fetchval("SELECT 1")
            return result == 1
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
