"""
Async engine and session lifecycle for the customer/order tables
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits on the file lock before "database is locked"
SQLITE_LOCK_TIMEOUT = 15


def engine_options(database_url: str) -> Dict[str, Any]:
    """create_async_engine keyword arguments for the given backend"""
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"timeout": SQLITE_LOCK_TIMEOUT}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


class DatabaseManager:
    """Owns one async engine. Built at process start, disposed at shutdown."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.sessions: Optional[async_sessionmaker] = None

    @property
    def backend(self) -> str:
        return make_url(self.database_url).get_backend_name()

    def initialize(self) -> "DatabaseManager":
        self.engine = create_async_engine(self.database_url, **engine_options(self.database_url))
        # Rows are mapped to pydantic models after commit, so keep them loaded
        self.sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        logger.info(f"🗄️ Database engine ready ({self.backend})")
        return self

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    def new_session(self) -> AsyncSession:
        """Unmanaged session; the caller commits, rolls back and closes it"""
        if self.sessions is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self.sessions()

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        async with self.new_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self.sessions = None
        logger.info("Database connections closed")
