"""Spans around workflow-engine operations.

Span Hierarchy:
    operation span (advance / skip / evidence.attach / evidence.analysis_result)
    analysis span (one per provider call, on the worker thread)
    └── agent_span (created by Strands)
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import StatusCode

logger = logging.getLogger(__name__)


def get_tracer() -> trace.Tracer:
    """Get the tracer for engine spans.

    Without an installed tracer provider this is OpenTelemetry's no-op tracer.
    """
    return trace.get_tracer("inspectflow.workflow")


@contextmanager
def operation_span(
    operation: str,
    session_id: str | None = None,
    **attributes: Any,
) -> Generator[Any, None, None]:
    """Create a span for one engine operation.

    Args:
        operation: Operation name (e.g., "advance", "evidence.attach")
        session_id: Optional session ID for correlation
        **attributes: Additional span attributes (None values are dropped)

    Yields:
        The OpenTelemetry span

    Example:
        with operation_span("advance", session_id=sid) as span:
            span.set_attribute("inspection.step", "thermal_imaging")
    """
    span_attributes: dict[str, Any] = {"inspection.operation": operation}
    if session_id:
        span_attributes["session.id"] = session_id
    span_attributes.update({k: v for k, v in attributes.items() if v is not None})

    with get_tracer().start_as_current_span(
        name=f"inspection:{operation}",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as e:
            record_error(span, e)
            raise


def record_error(span, error: Exception) -> None:
    """Record an error to a span with structured attributes.

    Errors carrying a ``code`` (typed engine errors) also record that code.
    """
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(error).__name__)
    span.set_attribute("error.message", str(error)[:500])

    code = getattr(error, "code", None)
    if isinstance(code, str):
        span.set_attribute("error.code", code)

    span.record_exception(error)
    span.set_status(StatusCode.ERROR, str(error))
