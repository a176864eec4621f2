"""
Omnivore API - Database Session Management
==========================================

What:  Async SQLAlchemy engine, session factory, and session scopes.
How:   One async engine with connection pooling. Two ways to get a session:

       get_db_session()  FastAPI dependency, one session per request that
                         commits on success and rolls back on error.
       transaction()     Explicit scope used by the upload flow: every call
                         opens an independent session, commits when the block
                         exits cleanly and rolls back on any exception.

Connection Pooling:
    pool_size=20, max_overflow=10, pool_pre_ping, pool_recycle=3600.
    At most 30 connections against PostgreSQL's default max_connections=100.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from omnivore_api.config import settings


def _engine_options() -> dict:
    # SQLite (tests, local experiments) has no connection pool to size.
    if settings.database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level == "DEBUG",
    **_engine_options(),
)

# expire_on_commit=False: attributes stay readable after the scope commits.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata drives Alembic."""
    pass


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns, rolls back when it raises, and always
    returns the connection to the pool.

    Example usage in a route:
        @router.get("/pages")
        async def list_pages(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncSession]:
    """
    Open an isolated transaction scope.

    Usage:
        async with transaction() as tx:
            tx.add(upload)
            await tx.flush()

    The session commits when the block exits normally and rolls back on every
    other exit path, including exceptions raised by the caller.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close all pooled connections (application shutdown)."""
    await engine.dispose()
