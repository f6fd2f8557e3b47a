"""Postgres connection pool and migrations for the routine store."""

from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from routine_assistant.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Create the connection pool if it does not exist yet."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=1,
            max_size=5,
            command_timeout=30,
        )
        logger.info("database_pool_created", url=settings.postgres_url)
        return _pool
    except Exception as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise


async def close_database() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations() -> None:
    """Apply every SQL file in migrations/ in name order.

    Migrations use IF NOT EXISTS and can be re-run safely.
    """
    pool = await get_pool()

    if not MIGRATIONS_DIR.exists():
        logger.warning("migrations_directory_not_found", path=str(MIGRATIONS_DIR))
        return

    migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))

    async with pool.acquire() as conn:
        for migration_file in migration_files:
            try:
                await conn.execute(migration_file.read_text())
                logger.info("migration_applied", file=migration_file.name)
            except Exception as e:
                logger.error(
                    "migration_failed",
                    file=migration_file.name,
                    error=str(e),
                )
                raise
