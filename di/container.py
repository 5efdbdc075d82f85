"""
GATHERLY - Subsystem Registry

Composition root for the backing subsystems. The registry owns the handle
objects for the lifetime of the process; the bootstrap sequencer and the
health aggregator receive them from here instead of looking them up by
global name.

Features:
- Ordered registration (bootstrap connects in registration order)
- Unique names (a name is also the key in the /health body)
- Single place to release every client at shutdown
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from core.errors import ConfigurationError
from core.subsystems import RESERVED_NAMES, Criticality, SubsystemHandle
from observability.logging import get_logger

if TYPE_CHECKING:
    from api.realtime import RealtimeGateway
    from config import Config

logger = get_logger("gatherly.di")


class SubsystemRegistry:
    """
    Ordered, name-unique collection of subsystem handles.

    Usage:
        registry = SubsystemRegistry()
        registry.register(PostgresHandle(url, criticality=Criticality.MANDATORY))
        await BootstrapSequencer().run(registry.handles)
    """

    def __init__(self, handles: Optional[List[SubsystemHandle]] = None):
        self._handles: Dict[str, SubsystemHandle] = {}
        self._lock = threading.Lock()
        for handle in handles or []:
            self.register(handle)

    def register(self, handle: SubsystemHandle) -> SubsystemHandle:
        """Add a handle. Names must be unique."""
        if not isinstance(handle, SubsystemHandle):
            raise ConfigurationError(f"{handle!r} does not implement the subsystem handle contract")
        if handle.name in RESERVED_NAMES:
            raise ConfigurationError(
                f"Subsystem name '{handle.name}' is reserved by the health report",
                setting=handle.name,
            )
        with self._lock:
            if handle.name in self._handles:
                raise ConfigurationError(
                    f"Subsystem '{handle.name}' is already registered",
                    setting=handle.name,
                )
            self._handles[handle.name] = handle
        return handle

    @property
    def handles(self) -> List[SubsystemHandle]:
        """Handles in registration order."""
        with self._lock:
            return list(self._handles.values())

    @property
    def names(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def get(self, name: str) -> SubsystemHandle:
        try:
            return self._handles[name]
        except KeyError:
            raise KeyError(f"Subsystem not registered: {name}") from None

    def find(self, name: str) -> Optional[SubsystemHandle]:
        return self._handles.get(name)

    def mandatory(self) -> List[SubsystemHandle]:
        return [h for h in self.handles if h.criticality is Criticality.MANDATORY]

    async def close_all(self) -> None:
        """Close every handle that supports it, in reverse registration order."""
        for handle in reversed(self.handles):
            close = getattr(handle, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning("Error closing subsystem", subsystem=handle.name, error=str(e))

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def __iter__(self) -> Iterator[SubsystemHandle]:
        return iter(self.handles)

    def __len__(self) -> int:
        return len(self._handles)


def _criticality(config: "Config", name: str) -> Criticality:
    return Criticality.MANDATORY if config.is_mandatory(name) else Criticality.OPTIONAL


def build_registry(config: "Config", gateway: "RealtimeGateway") -> SubsystemRegistry:
    """
    Build the process's subsystem handles from configuration.

    Registration order is the bootstrap order: database, email, cache,
    messaging, storage, realtime.
    """
    from api.realtime import RealtimeChannelHandle
    from db.postgres import PostgresHandle
    from db.redis_cache import RedisCacheHandle
    from integrations.mailer import EmailHandle
    from integrations.messaging import MessagingHandle
    from integrations.object_storage import ObjectStorageHandle

    sub = config.subsystems
    registry = SubsystemRegistry()
    registry.register(PostgresHandle(
        sub.database_url,
        pool_size=sub.database_pool_size,
        criticality=_criticality(config, "database"),
    ))
    registry.register(EmailHandle(
        sub.smtp_host,
        port=sub.smtp_port,
        starttls=sub.smtp_starttls,
        username=sub.smtp_username,
        password=sub.smtp_password,
        criticality=_criticality(config, "email"),
        timeout=sub.connect_timeout,
    ))
    registry.register(RedisCacheHandle(
        sub.redis_url,
        criticality=_criticality(config, "cache"),
        socket_timeout=sub.connect_timeout,
    ))
    registry.register(MessagingHandle(
        sub.messaging_url,
        stream=sub.messaging_stream,
        group=sub.messaging_group,
        criticality=_criticality(config, "messaging"),
        socket_timeout=sub.connect_timeout,
    ))
    registry.register(ObjectStorageHandle(
        sub.storage_endpoint,
        sub.storage_bucket,
        criticality=_criticality(config, "storage"),
        timeout=sub.connect_timeout,
    ))
    registry.register(RealtimeChannelHandle(
        gateway,
        criticality=_criticality(config, "realtime"),
    ))

    unknown = set(sub.mandatory) - set(registry.names)
    if unknown:
        raise ConfigurationError(
            f"MANDATORY_SUBSYSTEMS names unknown subsystems: {sorted(unknown)}",
            setting="MANDATORY_SUBSYSTEMS",
        )

    logger.debug("Subsystem registry built", subsystems=registry.names)
    return registry
