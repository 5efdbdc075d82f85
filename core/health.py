"""
GATHERLY - Health Aggregation

Re-probes every registered subsystem on demand and folds the verdicts into
one composite report. Nothing is cached: a subsystem that failed at
bootstrap may have recovered since, and one that connected may be gone.

The overall status is a strict conjunction: "ok" only when every probe,
mandatory or optional, reports connected. A probe that raises or exceeds
its timeout counts as disconnected and never stops the other probes.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from core.errors import ConfigurationError, ProbeError
from core.subsystems import RESERVED_NAMES, SubsystemHandle, SubsystemStatus
from observability.logging import get_logger
from observability.metrics import get_gatherly_metrics
from observability.tracing import create_span

logger = get_logger("gatherly.health")

OVERALL_OK = "ok"
OVERALL_ERROR = "error"


@dataclass
class HealthReport:
    """Composite health verdict for one aggregation pass."""
    overall_status: str
    per_subsystem: Dict[str, SubsystemStatus]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: float = 0.0

    @property
    def is_healthy(self) -> bool:
        return self.overall_status == OVERALL_OK

    @property
    def disconnected(self) -> List[str]:
        return [name for name, status in self.per_subsystem.items() if not status.is_connected]

    def to_response(self) -> Dict[str, Any]:
        """
        Flattened body served by GET /health.

        ``{"status": "ok"|"error", "<name>": "connected"|"disconnected", ..., "timestamp": ISO-8601}``
        """
        body: Dict[str, Any] = {"status": self.overall_status}
        for name, status in self.per_subsystem.items():
            body[name] = status.status.value
        body["timestamp"] = isoformat_utc(self.timestamp)
        return body

    def to_dict(self) -> Dict[str, Any]:
        """Detailed form including per-subsystem diagnostics."""
        return {
            "status": self.overall_status,
            "timestamp": isoformat_utc(self.timestamp),
            "duration_ms": round(self.duration_ms, 2),
            "subsystems": {
                name: {
                    "status": status.status.value,
                    "detail": status.detail,
                    "latency_ms": round(status.latency_ms, 2),
                }
                for name, status in self.per_subsystem.items()
            },
        }


class HealthAggregator:
    """
    Probes a fixed set of handles concurrently, each within ``probe_timeout``.

    Holds references to the handles only; every call to ``check`` builds a
    fresh report.
    """

    def __init__(self, handles: Sequence[SubsystemHandle], probe_timeout: float = 2.0):
        if probe_timeout <= 0:
            raise ConfigurationError("probe timeout must be positive", setting="PROBE_TIMEOUT")
        reserved = sorted(h.name for h in handles if h.name in RESERVED_NAMES)
        if reserved:
            raise ConfigurationError(f"Subsystem names {reserved} collide with health report keys")
        self._handles = list(handles)
        self._probe_timeout = probe_timeout

    @property
    def handles(self) -> List[SubsystemHandle]:
        return list(self._handles)

    async def check(self) -> HealthReport:
        """Run every probe and aggregate the verdicts."""
        start = time.perf_counter()
        with create_span("health.check", attributes={"health.subsystems": len(self._handles)}) as span:
            statuses = await asyncio.gather(*(self._probe(handle) for handle in self._handles))
            per_subsystem = {handle.name: status for handle, status in zip(self._handles, statuses)}

            overall = OVERALL_OK if all(s.is_connected for s in statuses) else OVERALL_ERROR
            span.set_attribute("health.status", overall)

        report = HealthReport(
            overall_status=overall,
            per_subsystem=per_subsystem,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

        metrics = get_gatherly_metrics()
        if metrics:
            metrics.record_health_check(overall, report.duration_ms / 1000)

        if report.is_healthy:
            logger.debug("Health check passed", duration_ms=round(report.duration_ms, 2))
        else:
            logger.warning(
                "Health check found disconnected subsystems",
                disconnected=report.disconnected,
                duration_ms=round(report.duration_ms, 2),
            )
        return report

    async def _probe(self, handle: SubsystemHandle) -> SubsystemStatus:
        """Probe one handle; every failure mode maps to DISCONNECTED."""
        start = time.perf_counter()
        with create_span("health.probe", attributes={"subsystem.name": handle.name}) as span:
            try:
                verdict = await asyncio.wait_for(handle.probe(), timeout=self._probe_timeout)
                status = SubsystemStatus.from_verdict(verdict)
            except asyncio.TimeoutError:
                status = SubsystemStatus.disconnected(f"probe timed out after {self._probe_timeout}s")
            except ProbeError as e:
                status = SubsystemStatus.disconnected(e.message)
            except Exception as e:
                status = SubsystemStatus.disconnected(f"{type(e).__name__}: {e}")
            span.set_attribute("subsystem.status", status.status.value)

        elapsed = time.perf_counter() - start
        if not status.latency_ms:
            status = SubsystemStatus(status.status, status.detail, elapsed * 1000)

        metrics = get_gatherly_metrics()
        if metrics:
            metrics.record_subsystem_probe(handle.name, status.status.value, elapsed)

        if not status.is_connected:
            logger.warning(
                f"✗ {handle.name} disconnected",
                subsystem=handle.name,
                detail=status.detail,
            )
        return status


def isoformat_utc(ts: Optional[datetime] = None) -> str:
    """ISO-8601 with millisecond precision and a Z suffix; now when ``ts`` is omitted."""
    ts = ts or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
