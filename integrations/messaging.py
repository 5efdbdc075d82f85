"""
GATHERLY - Messaging Handle

Durable notification fan-out over Redis Streams. On connect the stream
and its consumer group are created if missing; publishing is an XADD of
a flat, string-valued entry.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import ResponseError

from core.errors import ServiceUnavailableError, SubsystemConnectionError
from core.subsystems import Criticality, SubsystemHandleBase, SubsystemStatus


logger = logging.getLogger("gatherly.integrations.messaging")


@dataclass
class QueueMessage:
    """One entry on the notification stream."""
    event_type: str
    payload: Dict[str, Any]
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    message_id: Optional[str] = None  # Set by Redis on publish
    source: str = "gatherly"

    def to_dict(self) -> Dict[str, str]:
        """Convert to the flat mapping XADD expects."""
        return {
            "event_type": self.event_type,
            "payload": json.dumps(self.payload),
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], message_id: Optional[str] = None) -> "QueueMessage":
        payload = data.get("payload", "{}")
        if isinstance(payload, str):
            payload = json.loads(payload)
        return cls(
            event_type=data.get("event_type", "unknown"),
            payload=payload,
            correlation_id=data.get("correlation_id", str(uuid.uuid4())),
            timestamp=data.get("timestamp", datetime.now(timezone.utc).isoformat()),
            message_id=message_id,
            source=data.get("source", "gatherly"),
        )


class MessagingHandle(SubsystemHandleBase):
    """Subsystem handle for the message queue."""

    def __init__(
        self,
        url: str,
        stream: str = "gatherly:notifications",
        group: str = "gatherly",
        criticality: Criticality = Criticality.OPTIONAL,
        name: str = "messaging",
        max_stream_length: int = 10000,
        socket_timeout: Optional[float] = None,
    ):
        super().__init__(name, criticality)
        self.url = url
        self.stream = stream
        self.group = group
        self.max_stream_length = max_stream_length
        self.socket_timeout = socket_timeout
        self._redis: Optional[Redis] = None

    async def _open(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.url,
                socket_connect_timeout=self.socket_timeout,
                decode_responses=True,
            )
        await self._redis.ping()
        await self._ensure_consumer_group()
        logger.info(f"Messaging stream '{self.stream}' ready (group '{self.group}')")

    async def _ensure_consumer_group(self) -> bool:
        """Create the consumer group; False when it already exists."""
        try:
            await self._redis.xgroup_create(self.stream, self.group, id="$", mkstream=True)
            return True
        except ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug(f"Consumer group '{self.group}' already exists for {self.stream}")
                return False
            raise

    async def _ping(self) -> SubsystemStatus:
        if self._redis is None:
            return SubsystemStatus.disconnected("client not initialized")
        await self._redis.ping()
        return SubsystemStatus.connected()

    async def publish(self, message: QueueMessage) -> str:
        """
        Append ``message`` to the stream.

        Reconnects first when the queue went down at startup or since.

        Raises:
            ServiceUnavailableError: the queue cannot be reached
            RedisError: the XADD itself failed
        """
        if self._redis is None or not self.is_connected:
            try:
                await self.connect()
            except SubsystemConnectionError as e:
                raise ServiceUnavailableError(
                    "Messaging is unavailable",
                    details={"subsystem": self.name},
                    cause=e,
                ) from e
        message_id = await self._redis.xadd(
            self.stream,
            message.to_dict(),
            maxlen=self.max_stream_length,
            approximate=True,
        )
        message.message_id = message_id
        logger.debug(f"Published message {message_id} to {self.stream}: type={message.event_type}")
        return message_id

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        await super().close()
