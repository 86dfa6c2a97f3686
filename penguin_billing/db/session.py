"""
Async SQLAlchemy engine and sessions for the purchase store.

The engine is created lazily so importing the app does not open a pool;
close_engines() runs from the lifespan shutdown.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from penguin_billing.config import settings
from penguin_billing.observability.tracing import instrument_sqlalchemy

# One engine per process
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

ASYNC_SCHEME = "postgresql+asyncpg"


def get_async_database_url(url: str | None = None) -> str:
    """
    Point the URL at the asyncpg driver.

    Hosting platforms hand out postgres:// or driverless postgresql:// URLs;
    create_async_engine needs the async dialect spelled out.
    """
    url = url or settings.database_url
    scheme, sep, rest = url.partition("://")
    if sep and (scheme in ("postgres", "postgresql") or scheme.startswith("postgresql+")):
        return f"{ASYNC_SCHEME}://{rest}"
    return url


def get_engine() -> AsyncEngine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            get_async_database_url(),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.log_level == "DEBUG",
        )
        instrument_sqlalchemy(_engine)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request; the purchase store commits its own writes."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_engines() -> None:
    """Dispose of the pool; a later get_engine() builds a fresh one."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
