"""Logging and tracing setup for processes embedding the engine.

``init_telemetry()`` is called once by an entry point (the CLI's ``--trace``
mode, or a host service). Library code never calls it; engine modules only
create loggers and spans, which are no-ops until a process opts in.
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider

from inspectflow import __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are only interesting at DEBUG
_NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "httpx")

# Global state
_telemetry_initialized = False
_tracer_provider: TracerProvider | None = None
_strands_telemetry = None


class ExporterType(Enum):
    """Supported trace exporters."""

    OTLP = "otlp"
    CONSOLE = "console"
    NONE = "none"


@dataclass
class TelemetryConfig:
    """Logging and tracing settings.

    Tracing defaults to no exporter: spans are created and dropped unless an
    operator points ``OTEL_TRACES_EXPORTER`` somewhere.
    """

    log_level: str = "INFO"

    service_name: str = "inspectflow"
    deployment: str = "local"
    otlp_endpoint: str = "http://localhost:4317"
    traces_exporter: ExporterType = ExporterType.NONE
    otel_disabled: bool = False

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Read settings from ``LOG_LEVEL`` and the standard ``OTEL_*`` variables."""
        exporter_name = os.getenv("OTEL_TRACES_EXPORTER", "none").strip().lower()
        try:
            exporter = ExporterType(exporter_name)
        except ValueError:
            logger.warning(f"Unknown OTEL_TRACES_EXPORTER '{exporter_name}', spans will be dropped")
            exporter = ExporterType.NONE

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            service_name=os.getenv("OTEL_SERVICE_NAME", "inspectflow"),
            deployment=os.getenv("INSPECTFLOW_DEPLOYMENT", "local"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"),
            traces_exporter=exporter,
            otel_disabled=os.getenv("OTEL_SDK_DISABLED", "false").lower() in ("true", "1", "yes"),
        )

    def resource_attributes(self) -> dict[str, Any]:
        return {
            SERVICE_NAME: self.service_name,
            SERVICE_VERSION: __version__,
            "deployment.environment": self.deployment,
        }


def _setup_logging(config: TelemetryConfig) -> None:
    """Route all records to stderr in the engine's log format.

    stdout stays reserved for command output (the CLI prints JSON there).
    """
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(handler)

    # The analysis agent logs through strands
    for name in ("inspectflow", "strands"):
        logging.getLogger(name).setLevel(level)
    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={config.log_level}")


def _setup_tracing(config: TelemetryConfig) -> TracerProvider | None:
    """Install a global tracer provider shared by engine spans and Strands agent spans."""
    global _strands_telemetry

    if config.otel_disabled:
        logger.info("Tracing disabled via OTEL_SDK_DISABLED")
        return None

    from strands.telemetry import StrandsTelemetry

    try:
        provider = TracerProvider(resource=Resource.create(config.resource_attributes()))
        trace.set_tracer_provider(provider)
        _strands_telemetry = StrandsTelemetry(tracer_provider=provider)

        if config.traces_exporter is ExporterType.OTLP:
            _strands_telemetry.setup_otlp_exporter(endpoint=config.otlp_endpoint)
            logger.info(f"Exporting spans over OTLP to {config.otlp_endpoint}")
        elif config.traces_exporter is ExporterType.CONSOLE:
            _strands_telemetry.setup_console_exporter()
            logger.info("Exporting spans to the console")
        return provider

    except Exception as e:
        logger.warning(f"Tracing setup failed, continuing without spans: {e}")
        _strands_telemetry = None
        return None


def init_telemetry(config: TelemetryConfig | None = None) -> None:
    """Configure logging and tracing for this process. Later calls are ignored.

    Args:
        config: Settings to apply. Read from the environment when omitted.
    """
    global _telemetry_initialized, _tracer_provider

    if _telemetry_initialized:
        logger.debug("Telemetry already initialized")
        return

    config = config or TelemetryConfig.from_env()
    _setup_logging(config)
    _tracer_provider = _setup_tracing(config)
    _telemetry_initialized = True

    logger.info(
        f"Telemetry ready: service={config.service_name} v{__version__}, "
        f"exporter={config.traces_exporter.value}, tracing={'on' if _tracer_provider else 'off'}"
    )


def shutdown_telemetry() -> None:
    """Flush buffered spans and forget the process-level state."""
    global _telemetry_initialized, _tracer_provider, _strands_telemetry

    if not _telemetry_initialized:
        return

    if _tracer_provider is not None:
        _tracer_provider.force_flush()
        _tracer_provider.shutdown()

    _telemetry_initialized = False
    _tracer_provider = None
    _strands_telemetry = None
    logger.info("Telemetry shut down")


def is_telemetry_enabled() -> bool:
    """True once ``init_telemetry`` has installed a tracer provider."""
    return _telemetry_initialized and _tracer_provider is not None
