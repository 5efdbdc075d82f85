"""
GATHERLY - Observability Package

Structured logging, distributed tracing and metrics for the server process.

Components:
- logging: structlog integration with trace context propagation
- tracing: OpenTelemetry distributed tracing with OTLP export
- metrics: Gatherly metrics for requests, subsystem connects and health checks

Usage:
    from observability import setup_observability

    setup_observability(config)
"""
from typing import Any

from .logging import (
    LogContext,
    LoggingConfig,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from .metrics import (
    GatherlyMetrics,
    MetricsConfig,
    get_gatherly_metrics,
    setup_metrics,
    shutdown_metrics,
)
from .tracing import (
    TracingConfig,
    create_span,
    get_tracer,
    setup_tracing,
    shutdown_tracing,
)

__all__ = [
    # Logging
    "LogContext",
    "LoggingConfig",
    "bind_context",
    "clear_context",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    # Metrics
    "GatherlyMetrics",
    "MetricsConfig",
    "get_gatherly_metrics",
    "setup_metrics",
    "shutdown_metrics",
    # Tracing
    "TracingConfig",
    "create_span",
    "get_tracer",
    "setup_tracing",
    "shutdown_tracing",
    # Combined setup
    "setup_observability",
    "shutdown_observability",
]


def setup_observability(config: Any) -> None:
    """
    Initialize logging, tracing and metrics from a ``config.Config``.

    Logging is always configured; tracing and metrics only when enabled.
    """
    obs = config.observability
    environment = config.env.value

    setup_logging(LoggingConfig(
        service_name=obs.service_name,
        level=obs.log_level,
        json_format=obs.log_json_format,
        environment=environment,
    ))
    setup_tracing(TracingConfig(
        service_name=obs.service_name,
        service_version=obs.service_version,
        otlp_endpoint=obs.otlp_endpoint,
        enabled=obs.tracing_enabled,
        sample_rate=obs.get_sample_rate_for_env(environment),
        environment=environment,
    ))
    setup_metrics(MetricsConfig(
        service_name=obs.service_name,
        service_version=obs.service_version,
        otlp_endpoint=obs.otlp_endpoint,
        enabled=obs.metrics_enabled,
        environment=environment,
    ))


def shutdown_observability() -> None:
    """Flush all telemetry. Call during application shutdown."""
    shutdown_tracing()
    shutdown_metrics()
    shutdown_logging()
