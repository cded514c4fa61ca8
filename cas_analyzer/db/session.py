"""Database engine and session utilities."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cas_analyzer.config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for ``database_url``."""

    return create_async_engine(database_url, echo=False, future=True, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    settings = get_settings()
    return create_engine(settings.database_url)


@lru_cache(maxsize=1)
def get_session_factory() -> SessionFactory:
    return create_session_factory(get_engine())


__all__ = [
    "SessionFactory",
    "create_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
]
