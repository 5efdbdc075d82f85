"""
GATHERLY - Bootstrap Sequencer

Brings the backing subsystems online, in declaration order, before the
request pipeline is allowed to accept traffic.

Policy:
    - Handles are connected strictly one after another; suspension inside one
      handle's connect() never lets a later handle start early.
    - A mandatory handle that fails (after its retry budget) stops the
      sequence. Readiness is never signalled and BootstrapAbortedError is
      raised; the process entry turns that into a non-zero exit.
    - An optional handle that fails is recorded in the outcome and the next
      handle is attempted. The process runs in degraded mode.
    - Every connect attempt is bounded by an explicit timeout and produces
      exactly one log line naming the subsystem.

Usage:
    sequencer = BootstrapSequencer.from_config(config)
    outcome = await sequencer.run(registry.handles, on_ready=start_listening)
"""
from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union
from uuid import UUID, uuid4

from core.errors import BootstrapAbortedError, ConfigurationError, SubsystemConnectionError
from core.subsystems import RESERVED_NAMES, Criticality, SubsystemHandle
from observability.logging import get_logger
from observability.metrics import get_gatherly_metrics
from observability.tracing import create_span

logger = get_logger("gatherly.bootstrap")

ReadyCallback = Callable[["BootstrapOutcome"], Union[None, Awaitable[None]]]


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """
    Immutable record of one connect attempt.

    Kept on the outcome so operators can see how startup went without
    scraping logs.
    """
    event_id: UUID
    timestamp: float
    component: str
    success: bool
    duration_ms: float
    attempt: int
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success_event(cls, component: str, duration_ms: float, attempt: int) -> "LifecycleEvent":
        """Factory for successful connect attempts."""
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            component=component,
            success=True,
            duration_ms=duration_ms,
            attempt=attempt,
        )

    @classmethod
    def failure_event(
        cls,
        component: str,
        error: BaseException,
        duration_ms: float,
        attempt: int,
    ) -> "LifecycleEvent":
        """Factory for failed connect attempts."""
        return cls(
            event_id=uuid4(),
            timestamp=time.time(),
            component=component,
            success=False,
            duration_ms=duration_ms,
            attempt=attempt,
            error=str(error),
            error_type=type(error).__name__,
        )


@dataclass(frozen=True, slots=True)
class BootstrapFailure:
    """A subsystem that did not connect."""
    subsystem: str
    criticality: Criticality
    error: BaseException
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subsystem": self.subsystem,
            "criticality": self.criticality.value,
            "error": str(self.error),
            "error_type": type(self.error).__name__,
            "attempts": self.attempts,
        }


@dataclass
class BootstrapOutcome:
    """
    Result of one bootstrap run.

    ``failures`` keeps declaration order. If ``succeeded_mandatory`` is
    False the process must not accept requests.
    """
    succeeded_mandatory: bool = True
    failures: List[BootstrapFailure] = field(default_factory=list)
    connected: List[str] = field(default_factory=list)
    events: List[LifecycleEvent] = field(default_factory=list)
    ready: bool = False
    duration_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        """Running, but with at least one optional subsystem missing."""
        return self.succeeded_mandatory and bool(self.failures)

    @property
    def failed_subsystems(self) -> List[str]:
        return [f.subsystem for f in self.failures]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded_mandatory": self.succeeded_mandatory,
            "ready": self.ready,
            "degraded": self.degraded,
            "connected": list(self.connected),
            "failures": [f.to_dict() for f in self.failures],
            "duration_ms": round(self.duration_ms, 2),
        }


class BootstrapSequencer:
    """
    Ordered, timeout-bounded startup of subsystem handles.

    The sequencer owns no handles; it receives them per run and keeps only
    the transient outcome it builds.
    """

    def __init__(
        self,
        connect_timeout: float = 5.0,
        attempts: int = 1,
        retry_delay: float = 1.0,
    ):
        if connect_timeout <= 0:
            raise ConfigurationError("connect timeout must be positive", setting="CONNECT_TIMEOUT")
        if attempts < 1:
            raise ConfigurationError("at least one connect attempt is required", setting="CONNECT_ATTEMPTS")
        self._connect_timeout = connect_timeout
        self._attempts = attempts
        self._retry_delay = retry_delay
        self._ready = asyncio.Event()

    @classmethod
    def from_config(cls, config: Any) -> "BootstrapSequencer":
        """Build a sequencer from the ``subsystems`` section of a Config."""
        settings = config.subsystems
        return cls(
            connect_timeout=settings.connect_timeout,
            attempts=settings.connect_attempts,
            retry_delay=settings.retry_delay,
        )

    @property
    def ready(self) -> asyncio.Event:
        """Set once a run completed without a mandatory failure."""
        return self._ready

    async def run(
        self,
        handles: Sequence[SubsystemHandle],
        on_ready: Optional[ReadyCallback] = None,
    ) -> BootstrapOutcome:
        """
        Connect every handle in order and report what happened.

        Raises:
            BootstrapAbortedError: a mandatory handle failed. ``on_ready``
                is not called and the ``ready`` event stays clear.
        """
        _ensure_unique(handles)
        outcome = BootstrapOutcome()
        started = time.perf_counter()
        logger.info("Bootstrapping subsystems", subsystems=[h.name for h in handles])

        for handle in handles:
            error = await self._connect_with_retry(handle, outcome)
            if error is None:
                outcome.connected.append(handle.name)
                continue

            outcome.failures.append(
                BootstrapFailure(
                    subsystem=handle.name,
                    criticality=handle.criticality,
                    error=error,
                    attempts=self._attempts,
                )
            )

            if handle.criticality is Criticality.MANDATORY:
                outcome.succeeded_mandatory = False
                outcome.duration_ms = (time.perf_counter() - started) * 1000
                logger.error(
                    f"✗ {handle.name} is mandatory, aborting startup",
                    subsystem=handle.name,
                    error=str(error),
                )
                raise BootstrapAbortedError(
                    f"Mandatory subsystem {handle.name!r} failed to connect",
                    outcome=outcome,
                    cause=error,
                )

            logger.warning(
                f"Continuing without {handle.name}",
                subsystem=handle.name,
                criticality=handle.criticality.value,
            )

        outcome.duration_ms = (time.perf_counter() - started) * 1000
        outcome.ready = True
        self._ready.set()

        if outcome.degraded:
            logger.warning(
                "Bootstrap completed in degraded mode",
                failed=outcome.failed_subsystems,
                duration_ms=round(outcome.duration_ms, 2),
            )
        else:
            logger.info("Bootstrap completed", duration_ms=round(outcome.duration_ms, 2))

        if on_ready is not None:
            result = on_ready(outcome)
            if inspect.isawaitable(result):
                await result

        return outcome

    async def _connect_with_retry(
        self,
        handle: SubsystemHandle,
        outcome: BootstrapOutcome,
    ) -> Optional[BaseException]:
        """Connect one handle. Returns the last error, or None on success."""
        last_error: Optional[BaseException] = None
        metrics = get_gatherly_metrics()

        for attempt in range(1, self._attempts + 1):
            start = time.perf_counter()
            with create_span(
                "bootstrap.connect",
                attributes={
                    "subsystem.name": handle.name,
                    "subsystem.criticality": handle.criticality.value,
                    "bootstrap.attempt": attempt,
                },
            ) as span:
                try:
                    await asyncio.wait_for(handle.connect(), timeout=self._connect_timeout)
                except asyncio.TimeoutError as e:
                    last_error = SubsystemConnectionError(
                        f"{handle.name} did not connect within {self._connect_timeout}s",
                        subsystem=handle.name,
                        timeout_seconds=self._connect_timeout,
                        cause=e,
                    )
                except Exception as e:
                    last_error = e
                else:
                    last_error = None
                span.set_attribute("subsystem.connected", last_error is None)

            duration_ms = (time.perf_counter() - start) * 1000
            if metrics:
                metrics.record_subsystem_connect(handle.name, last_error is None, duration_ms / 1000)

            if last_error is None:
                outcome.events.append(LifecycleEvent.success_event(handle.name, duration_ms, attempt))
                logger.info(
                    f"✓ {handle.name} connected",
                    subsystem=handle.name,
                    attempt=attempt,
                    duration_ms=round(duration_ms, 2),
                )
                return None

            outcome.events.append(
                LifecycleEvent.failure_event(handle.name, last_error, duration_ms, attempt)
            )
            logger.error(
                f"✗ {handle.name} connection failed",
                subsystem=handle.name,
                criticality=handle.criticality.value,
                attempt=attempt,
                attempts=self._attempts,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )
            if attempt < self._attempts:
                await asyncio.sleep(self._retry_delay)

        return last_error


def _ensure_unique(handles: Sequence[SubsystemHandle]) -> None:
    seen = set()
    for handle in handles:
        if handle.name in RESERVED_NAMES:
            raise ConfigurationError(f"Subsystem name {handle.name!r} is reserved")
        if handle.name in seen:
            raise ConfigurationError(f"Duplicate subsystem name {handle.name!r}")
        seen.add(handle.name)
