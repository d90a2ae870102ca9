"""OpenTelemetry metrics for staged approval runs.

Metrics Emitted:
    Counters:
        - patchgate_approvals_total: Entries opened, by task
        - patchgate_promotions_total: Entries promoted, by task
        - patchgate_blocked_total: Entries blocked, by task
        - patchgate_admin_calls_total: Admin API calls by operation and status

    Histograms:
        - patchgate_run_duration_seconds: Coordinator run duration, by task and status

    Gauges:
        - patchgate_circuit_breaker_state: 0=closed, 1=open, 2=half_open

Without a configured MeterProvider the OpenTelemetry API hands out no-op
instruments, so recording is always safe.

Example:
    >>> metrics = RolloutMetrics()
    >>> metrics.record_admin_call("approve_update", success=True)
    >>> metrics.record_run("security", duration_seconds=4.2, success=True,
    ...                    new_approvals=2, promotions=1, blocked=0)
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

import structlog
from opentelemetry import metrics

if TYPE_CHECKING:
    from opentelemetry.metrics import Counter, Histogram
    from opentelemetry.metrics._internal.instrument import Gauge

logger = structlog.get_logger(__name__)


class CircuitBreakerStateValue(IntEnum):
    """Numeric values for the circuit breaker state gauge."""

    CLOSED = 0
    OPEN = 1
    HALF_OPEN = 2


class RolloutMetrics:
    """OpenTelemetry metrics collector for staged approval runs.

    Instruments are created lazily on first use.
    """

    APPROVALS_TOTAL = "patchgate_approvals_total"
    PROMOTIONS_TOTAL = "patchgate_promotions_total"
    BLOCKED_TOTAL = "patchgate_blocked_total"
    ADMIN_CALLS_TOTAL = "patchgate_admin_calls_total"
    RUN_DURATION_SECONDS = "patchgate_run_duration_seconds"
    CIRCUIT_BREAKER_STATE = "patchgate_circuit_breaker_state"

    def __init__(self, meter_name: str = "patchgate", meter_version: str = "0.1.0") -> None:
        """Initialize the collector.

        Args:
            meter_name: Name for the OpenTelemetry meter.
            meter_version: Version for the meter.
        """
        self._meter = metrics.get_meter(meter_name, meter_version)
        self._counters: dict[str, Counter] = {}
        self._run_duration: Histogram | None = None
        self._circuit_gauge: Gauge | None = None

    def _counter(self, name: str, description: str) -> Counter:
        if name not in self._counters:
            self._counters[name] = self._meter.create_counter(
                name, unit="1", description=description
            )
        return self._counters[name]

    @property
    def run_duration_histogram(self) -> Histogram:
        """Get or create the run duration histogram."""
        if self._run_duration is None:
            self._run_duration = self._meter.create_histogram(
                self.RUN_DURATION_SECONDS,
                unit="s",
                description="Duration of staged approval runs in seconds",
            )
        return self._run_duration

    @property
    def circuit_breaker_gauge(self) -> Gauge:
        """Get or create the circuit breaker state gauge."""
        if self._circuit_gauge is None:
            self._circuit_gauge = self._meter.create_gauge(
                self.CIRCUIT_BREAKER_STATE,
                unit="1",
                description="Circuit breaker state (0=closed, 1=open, 2=half_open)",
            )
        return self._circuit_gauge

    def record_admin_call(self, operation: str, *, success: bool) -> None:
        """Record one Admin API call (after retries)."""
        self._counter(
            self.ADMIN_CALLS_TOTAL, "Admin API calls by operation and status"
        ).add(
            1,
            attributes={"operation": operation, "status": "success" if success else "failure"},
        )

    def record_run(
        self,
        task_id: str,
        *,
        duration_seconds: float,
        success: bool,
        new_approvals: int,
        promotions: int,
        blocked: int,
    ) -> None:
        """Record the counters and duration of a finished run."""
        attributes = {"task_id": task_id}
        if new_approvals:
            self._counter(self.APPROVALS_TOTAL, "Tracking entries opened").add(
                new_approvals, attributes=attributes
            )
        if promotions:
            self._counter(self.PROMOTIONS_TOTAL, "Tracking entries promoted").add(
                promotions, attributes=attributes
            )
        if blocked:
            self._counter(self.BLOCKED_TOTAL, "Tracking entries blocked").add(
                blocked, attributes=attributes
            )
        self.run_duration_histogram.record(
            duration_seconds,
            attributes={**attributes, "status": "success" if success else "failure"},
        )

    def set_circuit_breaker_state(
        self,
        endpoint: str,
        state: CircuitBreakerStateValue,
        failure_count: int = 0,
    ) -> None:
        """Publish the circuit breaker state for an endpoint."""
        self.circuit_breaker_gauge.set(int(state), attributes={"endpoint": endpoint})
        logger.debug(
            "circuit_breaker_state_recorded",
            endpoint=endpoint,
            state=state.name.lower(),
            failure_count=failure_count,
        )


__all__ = ["CircuitBreakerStateValue", "RolloutMetrics"]
