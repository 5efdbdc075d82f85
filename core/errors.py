"""
GATHERLY - Unified Error Handling

Error hierarchy shared by the bootstrap sequencer, the health aggregator
and the request pipeline.

Taxonomy:
- SubsystemConnectionError: a subsystem is unreachable or misconfigured at
  connect time. Fatal for mandatory subsystems, recorded for optional ones.
- ProbeError: a subsystem is unreachable at health-check time. Always
  recovered inside the health aggregator.
- RequestError: anything raised while handling a request. Recovered by the
  terminal error-normalization stage of the request pipeline.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from core.bootstrap import BootstrapOutcome


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"    # Degraded operation
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"        # Process must not continue


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    subsystem: Optional[str] = None
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for serialization."""
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "subsystem": self.subsystem,
            "request_id": self.request_id,
            "metadata": self.metadata,
            "stack_trace": self.stack_trace,
        }

    @classmethod
    def from_current_span(
        cls,
        operation: str,
        component: str,
        **kwargs: Any
    ) -> "ErrorContext":
        """Create context from current OpenTelemetry span."""
        span = trace.get_current_span()
        trace_id = None
        span_id = None

        if span and span.is_recording():
            ctx = span.get_span_context()
            if ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                span_id = format(ctx.span_id, "016x")

        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id,
            span_id=span_id,
            stack_trace=traceback.format_exc(),
            **kwargs
        )


class GatherlyError(Exception):
    """
    Base exception for all Gatherly-specific errors.

    Provides:
    - Structured error context
    - Severity level
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: str = "GATHERLY_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[BaseException] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.timestamp = datetime.now(timezone.utc)

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            span.set_attribute("error.recoverable", self.recoverable)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for diagnostics."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)


class ConfigurationError(GatherlyError):
    """Invalid or missing configuration."""

    error_code = "CONFIG_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, setting: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.setting = setting


class SubsystemConnectionError(GatherlyError):
    """A subsystem could not be connected during bootstrap."""

    error_code = "SUBSYSTEM_CONNECTION_ERROR"
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        subsystem: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.subsystem = subsystem
        self.timeout_seconds = timeout_seconds


class ProbeError(GatherlyError):
    """A subsystem could not be probed at health-check time."""

    error_code = "PROBE_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        subsystem: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs: Any,
    ):
        super().__init__(message, recoverable=True, **kwargs)
        self.subsystem = subsystem
        self.timeout_seconds = timeout_seconds


class BootstrapAbortedError(GatherlyError):
    """A mandatory subsystem failed to connect; the process must not serve."""

    error_code = "BOOTSTRAP_ABORTED"
    default_severity = ErrorSeverity.FATAL

    def __init__(self, message: str, outcome: "BootstrapOutcome", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.outcome = outcome


class RequestError(GatherlyError):
    """
    Error raised while handling a request.

    Carries the HTTP status and the machine-readable code that the
    error-normalization stage puts on the wire.
    """

    error_code = "REQUEST_ERROR"
    status_code: int = 500
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details
        self.headers = headers or {}


class BadRequestError(RequestError):
    error_code = "BAD_REQUEST"
    status_code = 400


class AuthenticationError(RequestError):
    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required", **kwargs: Any):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer, API-Key"})
        super().__init__(message, **kwargs)


class PayloadTooLargeError(RequestError):
    error_code = "PAYLOAD_TOO_LARGE"
    status_code = 413


class ServiceUnavailableError(RequestError):
    error_code = "SERVICE_UNAVAILABLE"
    status_code = 503
