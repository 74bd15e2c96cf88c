"""
Database connection and session management.
Uses SQLAlchemy's asyncio extension so store calls can run concurrently
on the event loop (one AsyncSession per call).
"""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from quotefeed.utils.logger import get_logger

logger = get_logger("data.database")

# Base class for all our database models (must be defined before engine)
Base = declarative_base()


def create_session_factory(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Build the async engine and the session factory bound to it.

    Sessions are created with expire_on_commit=False so rows loaded inside a
    store call stay readable after the session closes.
    """
    engine = create_async_engine(database_url, pool_pre_ping=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet. In production, use migrations instead."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
