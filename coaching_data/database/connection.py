"""
Async PostgreSQL engine and session scopes.

Ingestion commits once per transcript from inside the services. The scopes
here only guarantee that a session left with a failed transaction is rolled
back and closed.
"""

from __future__ import annotations

import logging
import time
from typing import AsyncGenerator, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy import text

from coaching_data.core.config import settings

logger = logging.getLogger(__name__)


def _build_engine() -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,
    )


async_engine: AsyncEngine = _build_engine()

# expire_on_commit=False: outcomes read ORM attributes after the per-transcript commit
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scope for work outside a request, e.g. the background sync loop.

    Usage:
        async with get_db_context() as db:
            await SyncScheduler(config).run(IngestionService(db, config))
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for FastAPI dependencies."""
    async with get_db_context() as session:
        yield session


async def init_db() -> None:
    """Fail fast on startup if Postgres is unreachable."""
    logger.info(f"Connecting to database {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_DATABASE}...")

    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection established")
    except Exception as e:
        logger.error(f"❌ Failed to connect to database: {e}")
        raise


async def close_db() -> None:
    await async_engine.dispose()
    logger.info("✅ Database connections closed")


async def check_health() -> Dict[str, Any]:
    """Round-trip a ``SELECT 1`` and report latency."""
    started = time.perf_counter()
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "postgresql", "error": str(e)}

    return {
        "status": "healthy",
        "database": "postgresql",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
