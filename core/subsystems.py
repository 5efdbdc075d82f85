"""
GATHERLY - Subsystem Handles

A subsystem handle is the uniform wrapper the bootstrap sequencer and the
health aggregator use to talk to one backing dependency (database, cache,
messaging, object storage, realtime channel). The core depends on nothing
but this contract:

    connect() -> None            raises SubsystemConnectionError
    probe()   -> SubsystemStatus side-effect free read of connection state

Handles are built once at process entry and held by the subsystem
registry for the lifetime of the process.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from core.errors import ProbeError, SubsystemConnectionError


# Keys of the flat /health body that a subsystem name would overwrite
RESERVED_NAMES = frozenset({"status", "timestamp"})


class Criticality(Enum):
    """Whether a failed connect aborts process startup."""
    MANDATORY = "mandatory"
    OPTIONAL = "optional"


class ConnectionStatus(Enum):
    """Connection verdict of a single probe."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class SubsystemStatus:
    """Result of one probe. Produced fresh on every call, never cached."""
    status: ConnectionStatus
    detail: Optional[str] = None
    latency_ms: float = field(default=0.0, compare=False)

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    @classmethod
    def connected(cls, detail: Optional[str] = None, latency_ms: float = 0.0) -> "SubsystemStatus":
        return cls(ConnectionStatus.CONNECTED, detail, latency_ms)

    @classmethod
    def disconnected(cls, detail: Optional[str] = None, latency_ms: float = 0.0) -> "SubsystemStatus":
        return cls(ConnectionStatus.DISCONNECTED, detail, latency_ms)

    @classmethod
    def from_verdict(cls, verdict: Union["SubsystemStatus", bool, None]) -> "SubsystemStatus":
        """Normalize what a probe returned; bare booleans are accepted."""
        if isinstance(verdict, SubsystemStatus):
            return verdict
        if verdict is True:
            return cls.connected()
        if verdict is False or verdict is None:
            return cls.disconnected()
        raise TypeError(f"probe returned unsupported verdict {verdict!r}")


@runtime_checkable
class SubsystemHandle(Protocol):
    """Contract every backing subsystem exposes to the core."""

    @property
    def name(self) -> str:
        """Unique subsystem name, also the key in the /health body."""
        ...

    @property
    def criticality(self) -> Criticality:
        ...

    async def connect(self) -> None:
        """Establish the connection. Idempotent."""
        ...

    async def probe(self) -> SubsystemStatus:
        """Report current connection state."""
        ...


class SubsystemHandleBase(ABC):
    """
    Base class for concrete handles.

    Subclasses implement ``_open`` (establish the connection) and ``_ping``
    (cheap liveness check returning truthy when healthy). The base class
    provides idempotent connect, latency measurement and error wrapping.
    """

    def __init__(self, name: str, criticality: Criticality = Criticality.OPTIONAL):
        self._name = name
        self._criticality = criticality
        self._connected = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def criticality(self) -> Criticality:
        return self._criticality

    @property
    def is_mandatory(self) -> bool:
        return self._criticality is Criticality.MANDATORY

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            await self._open()
        except SubsystemConnectionError:
            raise
        except Exception as e:
            raise SubsystemConnectionError(
                f"{self._name} connection failed: {e}",
                subsystem=self._name,
                cause=e,
            ) from e
        self._connected = True

    async def probe(self) -> SubsystemStatus:
        start = time.perf_counter()
        try:
            verdict = await self._ping()
        except ProbeError:
            raise
        except Exception as e:
            raise ProbeError(
                f"{self._name} probe failed: {e}",
                subsystem=self._name,
                cause=e,
            ) from e
        latency_ms = (time.perf_counter() - start) * 1000
        status = SubsystemStatus.from_verdict(verdict)
        if status.latency_ms:
            return status
        return SubsystemStatus(status.status, status.detail, latency_ms)

    async def close(self) -> None:
        """Release the underlying client. Safe to call when never connected."""
        self._connected = False

    @abstractmethod
    async def _open(self) -> None:
        ...

    @abstractmethod
    async def _ping(self) -> Union[SubsystemStatus, bool]:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, criticality={self._criticality.value})"


ConnectFn = Callable[[], Awaitable[Any]]
ProbeFn = Callable[[], Awaitable[Union[SubsystemStatus, bool]]]


class CallableHandle(SubsystemHandleBase):
    """
    Handle assembled from a ``(name, criticality, connect_fn, probe_fn)`` tuple.

    Lets a collaborator that only offers a connect coroutine and a
    verify-connection coroutine join the registry without a dedicated class.
    """

    def __init__(
        self,
        name: str,
        criticality: Criticality,
        connect_fn: ConnectFn,
        probe_fn: ProbeFn,
    ):
        super().__init__(name, criticality)
        self._connect_fn = connect_fn
        self._probe_fn = probe_fn

    async def _open(self) -> None:
        await self._connect_fn()

    async def _ping(self) -> Union[SubsystemStatus, bool]:
        return await self._probe_fn()
