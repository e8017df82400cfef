"""
Async database session management.
Challenge: One transaction per request so multi-row barter writes commit or roll back together.
Design: Dependency injection for request-scoped sessions (no connection leaks).
"""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyswap.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options(url: str) -> dict:
    """SQLite (local dev) has no connection pool sizing."""
    opts = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        opts.update(pool_size=10, max_overflow=20)
    return opts


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Session factory: one session per request
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session per request. Commit on success, rollback on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("Rolling back request transaction")
            await session.rollback()
            raise


# Type alias for FastAPI dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
