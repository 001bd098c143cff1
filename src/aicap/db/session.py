"""Async SQLAlchemy engine, session factory, and schema bootstrap.

Provides:
    create_async_engine_from_url: Creates a configured async engine
    create_session_factory: Creates an async session maker
    init_models: Creates the api_key and webhook_credential tables
"""

from __future__ import annotations

from sqlalchemy import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from aicap.db.models import Base


def create_async_engine_from_url(
    database_url: str,
    *,
    pool_timeout: int = 5,
    connect_timeout: int = 5,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine with configured timeouts.

    Args:
        database_url: The database connection URL.
        pool_timeout: Seconds to wait for a connection from the pool.
        connect_timeout: Seconds to wait for the initial connection.
        echo: Whether to log SQL statements.

    Returns:
        A configured AsyncEngine instance.
    """
    kwargs: dict[str, object] = {"echo": echo}

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"timeout": connect_timeout}
    else:
        kwargs["pool_timeout"] = pool_timeout
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
        kwargs["pool_pre_ping"] = True

    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep attributes loaded after commit (expire_on_commit=False)."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
