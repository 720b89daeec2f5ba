"""Database engine, session and schema helpers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from parkpricing.core.config import get_settings
from parkpricing.db.base import Base


@dataclass(slots=True)
class _Database:
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]


_databases: dict[str, _Database] = {}


def _resolve_database_url(override: str | None = None) -> str:
    return override or get_settings().database_url


def _database(database_url: str | None = None) -> _Database:
    url = _resolve_database_url(database_url)
    database = _databases.get(url)
    if database is None:
        options: dict[str, object] = {"future": True}
        if make_url(url).get_backend_name() != "sqlite":
            options["pool_pre_ping"] = True
        engine = create_async_engine(url, **options)
        database = _Database(
            engine=engine,
            sessionmaker=async_sessionmaker(
                engine, expire_on_commit=False, class_=AsyncSession
            ),
        )
        _databases[url] = database
    return database


def get_engine(database_url: str | None = None) -> AsyncEngine:
    return _database(database_url).engine


def get_sessionmaker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Return (and cache) an async sessionmaker for the given database URL."""
    return _database(database_url).sessionmaker


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an async database session using the configured engine."""
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        yield session


async def create_schema(
    database_url: str | None = None, *, drop_existing: bool = False
) -> None:
    """Create the hierarchy, discount and outbox tables if missing."""
    import parkpricing.models  # noqa: F401  registers the mapped tables

    async with get_engine(database_url).begin() as connection:
        if drop_existing:
            await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)


async def dispose_engine(database_url: str | None = None) -> None:
    """Dispose the cached engine and sessionmaker for the given database URL."""
    database = _databases.pop(_resolve_database_url(database_url), None)
    if database is not None:
        await database.engine.dispose()
