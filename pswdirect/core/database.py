"""
Async database session factory for the SQLAlchemy-backed adapters.

The engine is created lazily on first use so that importing the adapters
(and running the unit tests) never requires a database driver.  Adapters
accept any ``async_sessionmaker``; this module only supplies the default one
used by the command-line jobs.
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pswdirect.core.config import settings


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Build the engine and session factory once per process."""
    engine = create_async_engine(
        settings.database_url,
        echo=settings.sql_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
