"""Telemetry for patchgate: structured logging, tracing and metrics."""

from __future__ import annotations

from patchgate.telemetry.logging import add_trace_context, configure_logging
from patchgate.telemetry.metrics import CircuitBreakerStateValue, RolloutMetrics
from patchgate.telemetry.sanitization import sanitize_error_message
from patchgate.telemetry.tracing import (
    create_span,
    get_tracer,
    record_error,
    reset_tracer,
    set_tracer,
)

__all__ = [
    "CircuitBreakerStateValue",
    "RolloutMetrics",
    "add_trace_context",
    "configure_logging",
    "create_span",
    "get_tracer",
    "record_error",
    "reset_tracer",
    "sanitize_error_message",
    "set_tracer",
]
