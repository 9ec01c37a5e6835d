"""
Database engine and session management.

Engine and session factory for the import jobs. Each job runs init_db
before its first write and close_db when it is done.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardnexus.config import settings
from cardnexus.models.db import Base

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models. Safe to call before
    every import run; existing tables are left alone.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of pooled connections at the end of a job run."""
    await engine.dispose()
