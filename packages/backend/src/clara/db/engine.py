"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clara.config import settings

_engine_kwargs = {
    "echo": settings.debug,
    "pool_pre_ping": True,
}

# Connection pool: min 2, max 10 connections. QueuePool sizing only
# applies to non-sqlite engines.
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs["pool_size"] = 2
    _engine_kwargs["max_overflow"] = 8

engine = create_async_engine(settings.database_url, **_engine_kwargs)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
