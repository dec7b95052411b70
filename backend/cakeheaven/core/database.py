"""Database engine, session management and declarative base."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cakeheaven.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


# Global engine and session factory
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


AFTER_COMMIT_KEY = "after_commit"


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[Any]]) -> None:
    """Run `callback` once the session's current transaction commits."""
    callbacks = session.info.setdefault(AFTER_COMMIT_KEY, [])
    if callback not in callbacks:
        callbacks.append(callback)


async def commit_session(session: AsyncSession) -> None:
    """Commit, then run the callbacks registered with after_commit()."""
    await session.commit()
    for callback in session.info.pop(AFTER_COMMIT_KEY, []):
        await callback()


async def rollback_session(session: AsyncSession) -> None:
    """Roll back and drop pending after_commit() callbacks."""
    session.info.pop(AFTER_COMMIT_KEY, None)
    await session.rollback()


async def get_db() -> AsyncGenerator[AsyncSession, Any]:
    """
    Dependency for getting database sessions.

    The whole request runs in one transaction: committed when the
    endpoint returns, rolled back if anything raises. Cache
    invalidation registered with after_commit() runs after the commit.

    Example:
        @router.get("/orders")
        async def get_orders(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await commit_session(session)
        except Exception:
            await rollback_session(session)
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables that don't exist yet."""
    # Import models so they register on the metadata
    import cakeheaven.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
