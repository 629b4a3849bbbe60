"""Async database manager for PatchMon-Engine."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from patchmon_engine.common.config import PatchmonSettings, get_settings
from patchmon_engine.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import patchmon_engine.auth.models  # noqa: F401
import patchmon_engine.hosts.models  # noqa: F401
import patchmon_engine.enrollment.models  # noqa: F401
import patchmon_engine.server_settings.models  # noqa: F401

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages a single async database engine with a small connection pool."""

    def __init__(self, settings: PatchmonSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        kwargs = {"echo": False, "pool_pre_ping": True}
        # Several instances may share one PostgreSQL server, so keep each pool small.
        if not url.startswith("sqlite"):
            kwargs.update(
                pool_size=self._settings.db_pool_size,
                max_overflow=self._settings.db_max_overflow,
                pool_timeout=self._settings.db_pool_timeout,
                pool_recycle=1800,
            )
        self.engine = create_async_engine(url, **kwargs)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized; call init() first")
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database connection failed: %s", e)
            return False

    async def wait_until_available(
        self,
        max_attempts: int | None = None,
        wait_interval: float | None = None,
    ) -> int:
        """Poll the database until it answers. Returns the attempt count.

        Raises RuntimeError once every attempt has failed.
        """
        max_attempts = max_attempts or self._settings.db_connect_max_attempts
        if wait_interval is None:
            wait_interval = self._settings.db_connect_wait_interval

        logger.info(
            "Waiting for database connection (max %d attempts, %ss interval)",
            max_attempts, wait_interval,
        )
        for attempt in range(1, max_attempts + 1):
            if await self.ping():
                logger.info("Database connected after %d attempt(s)", attempt)
                return attempt
            if attempt < max_attempts:
                logger.info(
                    "Database not ready (attempt %d/%d), retrying in %ss",
                    attempt, max_attempts, wait_interval,
                )
                await asyncio.sleep(wait_interval)

        raise RuntimeError(
            f"Database failed to become available after {max_attempts} attempts"
        )

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
