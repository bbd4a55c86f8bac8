# tradedesk/database/session.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker
from typing import AsyncGenerator
import logging

from .base import Base
from tradedesk.core.config import get_settings

db_logger = logging.getLogger("database")

logger = logging.getLogger(__name__)

settings = get_settings()

DATABASE_URL = settings.DATABASE_URL

logger.info(f"Attempting to connect to database using URL: {DATABASE_URL[:20]}...")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Creates the async engine. SQLite (aiosqlite) does not accept the
    queue pool arguments, so they are only passed for server databases.
    """
    if url.startswith("sqlite"):
        # Writers wait on each other instead of failing with "database is locked"
        return create_async_engine(url, echo=echo, connect_args={"timeout": 30})
    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=1800,  # Recycle connections every 30 minutes
        pool_pre_ping=True
    )


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    # expire_on_commit=False keeps ORM objects readable after commit
    return sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(DATABASE_URL, echo=settings.ECHO_SQL)

AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get an asynchronous database session.
    Yields a session and ensures it's closed after the request.
    """
    db_logger.debug("Creating new database session")
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            db_logger.error(f"Error in database session: {e}", exc_info=True)
            await session.rollback()
            db_logger.info("Session rolled back due to error")
            raise
        finally:
            db_logger.debug("Closing database session")


async def create_all_tables(bind: AsyncEngine = None):
    """
    Creates all tables defined in the SQLAlchemy models.
    Use with caution in production; migrations are preferred.
    """
    async with (bind or engine).begin() as conn:
        from . import models  # noqa: F401  registers the models on Base.metadata
        logger.info("Running Base.metadata.create_all...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Base.metadata.create_all finished.")
