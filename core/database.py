"""
Database engine and session management with SQLAlchemy async
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from core.config import Settings, settings
from models.base import Base
import logging

logger = logging.getLogger(__name__)


def build_engine(config: Settings = settings) -> AsyncEngine:
    """Create the async engine with pool sizing taken from settings"""
    return create_async_engine(
        config.DATABASE_URL,
        echo=False,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_recycle=config.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    """Create a session factory bound to ``bind``"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_maker(engine)


async def init_db(bind: AsyncEngine = engine):
    """Create the events and ingestion_state tables if they do not exist"""
    # Registers the tables on Base.metadata
    import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
