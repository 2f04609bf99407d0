"""
Database setup for the relational storage backend.

This module provides an asynchronous SQLAlchemy engine, a session
factory and a helper for creating the schema in development and
testing. It is only used when ``FINCOACH_STORAGE_BACKEND=database``;
the other storage variants never touch it.

SQLite (``sqlite+aiosqlite://``) is fine for local work; PostgreSQL via
``asyncpg`` is the production target.
"""
from __future__ import annotations

import contextlib
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings
from .errors import ConfigurationError


class Base(DeclarativeBase):  # type: ignore[call-arg]
    """Base class for declarative SQLAlchemy models.

    See ``fincoach/core/models.py`` for the actual model definitions.
    """

    pass


def _create_engine(db_url: str, echo: bool) -> AsyncEngine:
    """Instantiate a new async engine from the given URL."""
    return create_async_engine(db_url, echo=echo)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Return a cached asynchronous SQLAlchemy engine.

    The database URL comes from ``get_settings()``; a missing URL is a
    configuration error rather than a silent fallback to some default
    database.
    """
    settings = get_settings()
    if not settings.database_url:
        raise ConfigurationError(["DATABASE_URL"])
    return _create_engine(settings.database_url, echo=settings.env == "dev")


@lru_cache(maxsize=1)
def get_async_session_factory() -> async_sessionmaker:
    """Return a cached session factory bound to the current engine."""
    return async_sessionmaker(
        bind=get_engine(), expire_on_commit=False, class_=AsyncSession
    )


@contextlib.asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """Yield a session from ``factory``, committing on success and rolling back on error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db_schema(engine: AsyncEngine | None = None) -> None:
    """Create all tables in the database.

    Imports the models module so that the metadata is registered on the
    declarative base, then creates any missing tables.
    """
    from . import models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
