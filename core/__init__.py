"""
GATHERLY - Core Module

Startup and liveness machinery shared by every entry point:
- Unified error handling
- Subsystem handle contract
- Bootstrap sequencing (strictly ordered, per-handle timeouts)
- Health aggregation (concurrent, bounded probes)

The core never looks up a subsystem by global name; handles are passed in
explicitly by whoever builds them.

Usage:
    from core import BootstrapSequencer, HealthAggregator

    outcome = await BootstrapSequencer(connect_timeout=5.0).run(handles)
    report = await HealthAggregator(handles, probe_timeout=2.0).check()
"""

from core.errors import (
    AuthenticationError,
    BadRequestError,
    BootstrapAbortedError,
    ConfigurationError,
    ErrorContext,
    ErrorSeverity,
    GatherlyError,
    PayloadTooLargeError,
    ProbeError,
    RequestError,
    ServiceUnavailableError,
    SubsystemConnectionError,
)
from core.subsystems import (
    CallableHandle,
    ConnectionStatus,
    Criticality,
    RESERVED_NAMES,
    SubsystemHandle,
    SubsystemHandleBase,
    SubsystemStatus,
)
from core.bootstrap import (
    BootstrapFailure,
    BootstrapOutcome,
    BootstrapSequencer,
    LifecycleEvent,
)
from core.health import (
    OVERALL_ERROR,
    OVERALL_OK,
    HealthAggregator,
    HealthReport,
)

__all__ = [
    # Errors
    "AuthenticationError",
    "BadRequestError",
    "BootstrapAbortedError",
    "ConfigurationError",
    "ErrorContext",
    "ErrorSeverity",
    "GatherlyError",
    "PayloadTooLargeError",
    "ProbeError",
    "RequestError",
    "ServiceUnavailableError",
    "SubsystemConnectionError",
    # Subsystems
    "CallableHandle",
    "RESERVED_NAMES",
    "ConnectionStatus",
    "Criticality",
    "SubsystemHandle",
    "SubsystemHandleBase",
    "SubsystemStatus",
    # Bootstrap
    "BootstrapFailure",
    "BootstrapOutcome",
    "BootstrapSequencer",
    "LifecycleEvent",
    # Health
    "OVERALL_ERROR",
    "OVERALL_OK",
    "HealthAggregator",
    "HealthReport",
]
