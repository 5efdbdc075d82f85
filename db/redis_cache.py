"""
GATHERLY - Redis Cache Handle

Short-lived key/value cache. Liveness is a PING.
"""
from typing import Any, Optional
import logging

import redis.asyncio as aioredis
from redis.asyncio import Redis

from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus


logger = logging.getLogger("gatherly.db.redis_cache")


class RedisCacheHandle(SubsystemHandleBase):
    """Subsystem handle around a ``redis.asyncio`` client."""

    def __init__(
        self,
        redis_url: str,
        criticality: Criticality = Criticality.OPTIONAL,
        name: str = "cache",
        max_connections: int = 10,
        socket_timeout: Optional[float] = None,
    ):
        super().__init__(name, criticality)
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self._client: Optional[Redis] = None

    @property
    def client(self) -> Optional[Redis]:
        return self._client

    async def _open(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                socket_connect_timeout=self.socket_timeout,
                decode_responses=True,
            )
        await self._client.ping()
        logger.info(f"Redis cache ready at {self.redis_url.rsplit('@', 1)[-1]}")

    async def _ping(self) -> SubsystemStatus:
        if self._client is None:
            return SubsystemStatus.disconnected("client not initialized")
        ok = await self._client.ping()
        return SubsystemStatus.connected() if ok else SubsystemStatus.disconnected("PING returned false")

    async def get(self, key: str) -> Optional[str]:
        if self._client is None:
            return None
        return await self._client.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if self._client is None:
            return
        if ttl_seconds:
            await self._client.setex(key, ttl_seconds, value)
        else:
            await self._client.set(key, value)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis cache connection closed")
        await super().close()
