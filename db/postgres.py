"""
GATHERLY - PostgreSQL Handle

Primary data store. Connects through SQLAlchemy 2.0's async engine on top
of asyncpg; liveness is a ``SELECT 1`` round-trip.
"""
from typing import Optional
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus


logger = logging.getLogger("gatherly.db.postgres")


class PostgresHandle(SubsystemHandleBase):
    """
    Subsystem handle for the relational database.

    The engine is created on the first connect attempt and kept even if
    that attempt fails, so later probes can observe a recovered server.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        criticality: Criticality = Criticality.MANDATORY,
        name: str = "database",
        echo: bool = False,
    ):
        super().__init__(name, criticality)
        self.database_url = database_url
        self.pool_size = pool_size
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        return create_async_engine(
            self.database_url,
            pool_size=self.pool_size,
            max_overflow=0,
            echo=self.echo,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    async def _select_one(self) -> None:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def _open(self) -> None:
        if self._engine is None:
            self._engine = self._create_engine()
        await self._select_one()
        logger.info("PostgreSQL engine ready")

    async def _ping(self) -> SubsystemStatus:
        if self._engine is None:
            return SubsystemStatus.disconnected("engine not initialized")
        await self._select_one()
        return SubsystemStatus.connected()

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("PostgreSQL connections closed")
        await super().close()
