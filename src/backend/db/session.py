"""
Async database engine and session management.

PostgreSQL (asyncpg) in deployed environments; any SQLAlchemy async URL,
such as ``sqlite+aiosqlite``, can be supplied through ``DATABASE_URL``.
"""

from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from db.base import Base

logger = structlog.get_logger(__name__)


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing immediately
        return {"connect_args": {"timeout": 30}}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.DB_ECHO,
    **_engine_kwargs(settings.database_url),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables for all registered models when enabled."""
    import models  # noqa: F401  # registers mappers on Base.metadata

    if not settings.DB_CREATE_TABLES:
        logger.info("db_create_tables_skipped")
        return

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_tables_ready", tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()
    logger.info("db_engine_disposed")
