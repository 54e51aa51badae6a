"""
Async database handle for the arena snapshot tables.

``sqlite:///`` URLs are rewritten to the aiosqlite driver. In-memory SQLite
shares a single connection so that every session sees the same tables.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from arena.config import Config
from arena.database.models import Base
from arena.utils.logger import setup_logger


def async_database_url(database_url: str) -> str:
    if database_url.startswith('sqlite:///'):
        return database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
    return database_url


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = async_database_url(database_url or Config.DATABASE_URL)
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None

    @property
    def is_memory(self) -> bool:
        return self.database_url.startswith('sqlite') and ':memory:' in self.database_url

    async def initialize(self):
        """Create the engine and session factory, then create any missing arena tables"""
        self.logger.info(f"Initializing arena database ({self.database_url.split('://', 1)[0]})...")

        engine_options = {'echo': Config.DEBUG}
        if self.is_memory:
            engine_options['poolclass'] = StaticPool
            engine_options['connect_args'] = {'check_same_thread': False}
        self.engine = create_async_engine(self.database_url, **engine_options)

        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info(f"Arena database ready: {', '.join(sorted(Base.metadata.tables))}")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Read-mostly session; the caller commits explicitly"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.logger.info("Arena database closed")
