"""Async engine and sessions for the registry, dispatch and SMS tables.

SQLite under DATA_PATH unless DATABASE_URL points at PostgreSQL.
"""
import logging
import os
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import settings, get_database_url, is_postgresql

logger = logging.getLogger(__name__)

_is_postgres = is_postgresql()
_database_url = get_database_url()

if _is_postgres:
    # One connection per scan worker, with headroom for request handlers
    engine = create_async_engine(
        _database_url,
        echo=False,
        future=True,
        pool_size=settings.max_concurrent_users,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    logger.info("Using PostgreSQL database")
else:
    engine = create_async_engine(
        _database_url,
        echo=False,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"timeout": 30},
    )
    logger.info("Using SQLite database")

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()


async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    """Request-scoped session for routers."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create owned tables (and the SQLite data directory) at startup."""
    if not _is_postgres:
        os.makedirs(settings.data_path, exist_ok=True)

    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose of pooled connections on shutdown."""
    await engine.dispose()
