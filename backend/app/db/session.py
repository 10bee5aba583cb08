"""
Database session management.

Flow:
  1. The worker builds a RunRepository over AsyncSessionLocal.
  2. Every repository write opens its own session + transaction via
     session_scope(), so each step transition, document update and counter
     increment is an independent atomic unit.
  3. The session is closed and the connection returned to the pool when
     the block exits; an exception inside the block rolls the transaction
     back before it propagates.

Run-level processing never holds a transaction open across an external
call (S3 fetch, LLM request).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

engine: AsyncEngine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,          # detect stale connections before use
    pool_recycle=3600,           # recycle connections every hour
    echo=settings.db_echo_sql,   # log SQL in dev; disable in prod
)

# Session factory — expire_on_commit=False keeps ORM objects usable after commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ---------------------------------------------------------------------------
# Transaction scope
# ---------------------------------------------------------------------------

def session_scope_factory(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
):
    """
    Build a session_scope() bound to `session_factory`.

    Tests pass an in-memory factory; the worker uses AsyncSessionLocal.
    """

    @asynccontextmanager
    async def session_scope() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            async with session.begin():
                yield session
            # Transaction commits automatically on context exit (begin() block)

    return session_scope


get_admin_db = session_scope_factory()


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health() -> dict:
    """Ping the database; used by the worker health task."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
