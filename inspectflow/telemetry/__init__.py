"""Observability for the inspection engine.

Engine modules open one span per operation (``inspection:advance``,
``inspection:skip``, ``inspection:evidence.attach`` ...) and, on the analysis
workers, one span per provider call; Strands nests its agent spans beneath.
Until a process calls ``init_telemetry()`` these spans go to OpenTelemetry's
no-op tracer.

Settings (read by ``TelemetryConfig.from_env``):
    LOG_LEVEL                     default INFO
    OTEL_TRACES_EXPORTER          otlp | console | none (default none)
    OTEL_EXPORTER_OTLP_ENDPOINT   default http://localhost:4317
    OTEL_SERVICE_NAME             default inspectflow
    INSPECTFLOW_DEPLOYMENT        deployment.environment resource attribute
    OTEL_SDK_DISABLED             skip tracing entirely
"""

from .config import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from .spans import get_tracer, operation_span, record_error

__all__ = [
    "ExporterType",
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    "get_tracer",
    "operation_span",
    "record_error",
]
