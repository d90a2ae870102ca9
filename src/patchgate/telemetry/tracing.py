"""OpenTelemetry tracing utilities for patchgate.

Provides the create_span() context manager used to instrument runs, phases,
per-entry evaluations and Admin API calls. Error messages are sanitized
before they are recorded on spans.

Span Names:
    patchgate.run: One coordinator run
    patchgate.approval: Approval phase
    patchgate.promotion: Promotion phase
    patchgate.promotion.entry: Evaluation of one tracking entry
    patchgate.admin.<operation>: One Admin API call, retries included
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode, Tracer

from patchgate.telemetry.sanitization import sanitize_error_message

if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span

_TRACER_NAME = "patchgate"

_tracer: Tracer | None = None
_lock = threading.Lock()


def get_tracer() -> Tracer:
    """Get the patchgate tracer, creating it on first use.

    Falls back to a NoOpTracer when the global OpenTelemetry state cannot
    produce one.
    """
    global _tracer

    tracer = _tracer
    if tracer is not None:
        return tracer

    with _lock:
        if _tracer is None:
            try:
                _tracer = trace.get_tracer(_TRACER_NAME)
            except RecursionError:
                # OTel global state corrupted (seen with test fixtures)
                return trace.NoOpTracer()
        return _tracer


def set_tracer(tracer: Tracer | None) -> None:
    """Replace the patchgate tracer (for testing). None restores the default."""
    global _tracer
    with _lock:
        _tracer = tracer


def reset_tracer() -> None:
    """Drop the cached tracer so the next span re-reads the global provider."""
    set_tracer(None)


def record_error(span: Span, error: BaseException) -> None:
    """Mark a span as failed with a sanitized error description."""
    sanitized = sanitize_error_message(str(error))
    span.set_status(Status(StatusCode.ERROR, sanitized))
    span.set_attribute("exception.type", type(error).__name__)
    span.set_attribute("exception.message", sanitized)


@contextmanager
def create_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a span as a context manager.

    Nested calls create parent-child relationships automatically.

    Args:
        name: The span name.
        attributes: Optional attributes to set on the span. None values are
            skipped.

    Yields:
        The created span for additional attribute setting.

    Examples:
        >>> with create_span("patchgate.run", attributes={"patchgate.task_id": "sec"}):
        ...     pass
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            record_error(span, e)
            raise


__all__ = ["create_span", "get_tracer", "record_error", "reset_tracer", "set_tracer"]
