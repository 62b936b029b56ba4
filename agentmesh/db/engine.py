# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy Engine
# The API and the orchestration core are async, so the relational store is
# reached through SQLAlchemy's async engine with the asyncpg driver.
#
# Celery workers are SYNCHRONOUS. The detect_join_keys task drives the async
# detector with asyncio.run() and therefore uses a NullPool engine of its
# own (see get_task_session): pooled asyncpg connections are bound to the
# event loop that opened them and cannot be reused across asyncio.run calls.
#
# COMMIT POLICY:
# 1. Dependency-injected (get_async_session via Depends): auto-commits when
#    the request handler returns, rolls back on exception.
# 2. Self-managed (get_task_session): same lifecycle, for Celery tasks.
# =============================================================================

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from agentmesh.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# - echo (debug mode): logs every SQL statement
# - pool_size=5 / max_overflow=10: modest pool for the API process
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: loaded rows stay readable after commit, which in
# async context would otherwise trigger an implicit (failing) refresh.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session commits when the handler returns and rolls back if it
    raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_task_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for one asyncio.run() inside a Celery task.

    Builds a throwaway NullPool engine so no connection outlives the
    event loop that opened it.
    """
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    finally:
        await engine.dispose()
