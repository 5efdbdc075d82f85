"""
GATHERLY - OpenTelemetry Metrics

Key Metrics:
- gatherly_api_requests_total / gatherly_api_request_duration_seconds
- gatherly_subsystem_connects_total: connect attempts by subsystem and result
- gatherly_subsystem_connect_duration_seconds
- gatherly_subsystem_probe_duration_seconds: probe latency by subsystem
- gatherly_health_checks_total: health verdicts ("ok" / "error")

Usage:
    from observability.metrics import setup_metrics, get_gatherly_metrics

    setup_metrics(MetricsConfig(enabled=True))

    metrics = get_gatherly_metrics()
    if metrics:
        metrics.record_health_check("ok", 0.012)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from opentelemetry import metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider as SDKMeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

# Global state
_meter_provider: Optional[SDKMeterProvider] = None
_gatherly_metrics: Optional["GatherlyMetrics"] = None


@dataclass
class MetricsConfig:
    """Configuration for OpenTelemetry metrics."""

    service_name: str = "gatherly-server"
    service_version: str = "1.0.0"
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    )
    enabled: bool = field(
        default_factory=lambda: os.getenv("OTEL_METRICS_ENABLED", "false").lower() == "true"
    )
    environment: str = field(
        default_factory=lambda: os.getenv("ENVIRONMENT", "development")
    )
    console_export: bool = field(
        default_factory=lambda: os.getenv("OTEL_CONSOLE_EXPORT", "false").lower() == "true"
    )
    export_interval_millis: int = 60000


class GatherlyMetrics:
    """Instruments recorded by the bootstrap, health and request layers."""

    def __init__(self, meter: Meter):
        self.meter = meter

        self.api_requests_total = meter.create_counter(
            name="gatherly_api_requests_total",
            description="Total HTTP requests handled",
        )
        self.api_request_duration = meter.create_histogram(
            name="gatherly_api_request_duration_seconds",
            description="HTTP request duration",
            unit="s",
        )
        self.subsystem_connects = meter.create_counter(
            name="gatherly_subsystem_connects_total",
            description="Subsystem connect attempts",
        )
        self.subsystem_connect_duration = meter.create_histogram(
            name="gatherly_subsystem_connect_duration_seconds",
            description="Subsystem connect duration",
            unit="s",
        )
        self.subsystem_probe_duration = meter.create_histogram(
            name="gatherly_subsystem_probe_duration_seconds",
            description="Subsystem probe duration",
            unit="s",
        )
        self.health_checks = meter.create_counter(
            name="gatherly_health_checks_total",
            description="Health aggregations by overall status",
        )
        self.health_check_duration = meter.create_histogram(
            name="gatherly_health_check_duration_seconds",
            description="Health aggregation duration",
            unit="s",
        )

    def record_api_request(
        self,
        endpoint: str,
        method: str,
        duration: float,
        status_code: int,
    ) -> None:
        """Record API request metrics."""
        attributes = {
            "endpoint": endpoint,
            "method": method,
            "status_code": str(status_code),
        }
        self.api_request_duration.record(duration, attributes)
        self.api_requests_total.add(1, attributes)

    def record_subsystem_connect(self, subsystem: str, success: bool, duration: float) -> None:
        attributes = {"subsystem": subsystem, "result": "success" if success else "failure"}
        self.subsystem_connects.add(1, attributes)
        self.subsystem_connect_duration.record(duration, attributes)

    def record_subsystem_probe(self, subsystem: str, status: str, duration: float) -> None:
        self.subsystem_probe_duration.record(duration, {"subsystem": subsystem, "status": status})

    def record_health_check(self, overall_status: str, duration: float) -> None:
        self.health_checks.add(1, {"status": overall_status})
        self.health_check_duration.record(duration, {"status": overall_status})


def setup_metrics(config: Optional[MetricsConfig] = None) -> Optional[SDKMeterProvider]:
    """
    Configure OpenTelemetry metrics with OTLP export.

    Returns None when metrics are disabled; get_gatherly_metrics() then
    returns None and callers skip recording.
    """
    global _meter_provider, _gatherly_metrics

    if _meter_provider is not None:
        return _meter_provider

    config = config or MetricsConfig()
    if not config.enabled:
        return None

    resource = Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
    })

    readers = [
        PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint, insecure=True),
            export_interval_millis=config.export_interval_millis,
        )
    ]
    if config.console_export:
        readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=config.export_interval_millis,
            )
        )

    _meter_provider = SDKMeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(_meter_provider)

    meter = _meter_provider.get_meter(config.service_name, config.service_version)
    _gatherly_metrics = GatherlyMetrics(meter)
    return _meter_provider


def get_gatherly_metrics() -> Optional[GatherlyMetrics]:
    """Get the global GatherlyMetrics instance, or None when disabled."""
    return _gatherly_metrics


def shutdown_metrics() -> None:
    """Flush and stop metrics collection."""
    global _meter_provider, _gatherly_metrics

    if _meter_provider is not None:
        _meter_provider.shutdown()

    _meter_provider = None
    _gatherly_metrics = None
