from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.engine import URL
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator
import logging

from chatvault.config import Config
from .database import Base


class BaseDatabaseManager:
    """
    Owns the engine and its connection pool. Created once per process and injected into
    the gateways.
    """

    def __init__(self, config: Config):
        self.config = config
        self.engine = None
        self.session_factory = None
        self._logger = logging.getLogger(__name__)

    async def initialize(self):
        raise NotImplementedError()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Unit of work: commits when the block exits cleanly, rolls back on any exception.
        """
        if not self.engine:
            await self.initialize()

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def create_tables(self):
        if not self.engine:
            await self.initialize()

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None


class DatabaseManager(BaseDatabaseManager):
    def get_url(self) -> URL:
        db = self.config.db
        if db.host:
            return URL.create(
                "postgresql+asyncpg",
                username=db.user,
                password=db.password,
                host=db.host,
                port=db.port,
                database=db.name,
            )
        return URL.create("sqlite+aiosqlite", database=db.path)

    async def initialize(self):
        url = self.get_url()

        if url.get_backend_name() == "postgresql":
            self.engine = create_async_engine(
                url=url,
                pool_size=30,
                max_overflow=20,
                pool_pre_ping=True,
                pool_timeout=60,
                isolation_level="READ COMMITTED",
                echo=self.config.db.echo,
            )
        else:
            if url.database and url.database != ":memory:":
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_async_engine(
                url=url,
                echo=self.config.db.echo,
            )

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._logger.info("Database engine initialized (%s)", url.get_backend_name())
