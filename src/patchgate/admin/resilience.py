"""Retry and circuit breaking around Admin API calls.

A scheduled run talks to one patch server. When that server is down, every
update in the run would otherwise wait out its own timeouts and retries, so
two guards sit in front of the client:

    RetryPolicy     re-issues a call after a transient failure, backing off
                    exponentially with ±25% jitter.
    CircuitBreaker  stops calling the server after repeated transient
                    failures and lets a probe through once the recovery
                    window has passed.

Transient means ``AdminApiError.retryable``: a timeout, an unreachable server
or a 5xx. A 404 or 4xx rejection is an answer from a healthy server and is
neither retried nor counted against the circuit.

Example:
    >>> circuit = CircuitBreaker("wsus.example.com:8531")
    >>> retry = RetryPolicy(RetryConfig(max_attempts=3))
    >>> with circuit.protect():
    ...     retry.call("approve_update", client.approve_update, "u-1", "pilot")
"""

from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, ParamSpec, TypeVar

import structlog

from patchgate.errors import AdminApiError, CircuitBreakerOpenError, RetryLimitExceededError
from patchgate.schemas.admin import CircuitBreakerConfig, RetryConfig

if TYPE_CHECKING:
    from patchgate.telemetry.metrics import RolloutMetrics

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_JITTER_FRACTION = 0.25


class RetryPolicy:
    """Re-issue transient Admin API failures with exponential backoff.

    With the defaults a call is tried three times: immediately, then after
    roughly one second, then after roughly two.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config = config if config is not None else RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait after the given zero-based attempt failed."""
        cfg = self._config
        delay_ms = min(cfg.initial_delay_ms * cfg.backoff_multiplier**attempt, cfg.max_delay_ms)
        if cfg.jitter:
            spread = delay_ms * _JITTER_FRACTION
            delay_ms = delay_ms + random.uniform(-spread, spread)
        return max(delay_ms, 0.0) / 1000.0

    def call(
        self,
        operation: str,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Call ``func`` until it succeeds or the attempts run out.

        Raises:
            RetryLimitExceededError: The last allowed attempt also failed
                transiently. ``last_error`` holds that failure.
            AdminApiError: A non-retryable failure, raised unchanged on the
                attempt it occurred.
        """
        attempts = self._config.max_attempts
        attempt = 0
        while True:
            try:
                return func(*args, **kwargs)
            except AdminApiError as e:
                if not e.retryable:
                    raise
                attempt += 1
                if attempt >= attempts:
                    logger.warning(
                        "retry_exhausted", operation=operation, attempts=attempts, error=str(e)
                    )
                    raise RetryLimitExceededError(operation, attempts, e) from e
                wait = self.calculate_delay(attempt - 1)
                logger.debug(
                    "retry_scheduled",
                    operation=operation,
                    attempt=attempt,
                    of=attempts,
                    wait_seconds=round(wait, 3),
                    error=str(e),
                )
                time.sleep(wait)


class CircuitState(str, Enum):
    """Where a circuit breaker currently stands."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast while one Admin API server keeps failing.

    closed     Calls pass. ``failure_threshold`` consecutive transient
               failures open the circuit.
    open       Calls raise CircuitBreakerOpenError without touching the
               server until ``recovery_timeout_ms`` has passed since the
               last failure.
    half_open  Up to ``half_open_requests`` probes pass. A good probe closes
               the circuit; a failed one opens it again.
    """

    def __init__(
        self,
        endpoint: str,
        config: CircuitBreakerConfig | None = None,
        *,
        metrics: RolloutMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._config = config if config is not None else CircuitBreakerConfig()
        self._metrics = metrics
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._failed_at: datetime | None = None
        self._probes = 0
        self._publish()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    @property
    def recovery_time(self) -> datetime | None:
        """When an open circuit starts letting probes through."""
        with self._lock:
            if self._state is not CircuitState.OPEN or self._failed_at is None:
                return None
            return self._failed_at + timedelta(milliseconds=self._config.recovery_timeout_ms)

    def allow_request(self) -> bool:
        if not self._config.enabled:
            return True

        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN and (
                self._probes < self._config.half_open_requests
            ):
                self._probes += 1
                logger.debug("circuit_probe", endpoint=self._endpoint, probe=self._probes)
                return True
            return False

    def record_success(self) -> None:
        if not self._config.enabled:
            return

        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
            self._consecutive_failures = 0

    def record_failure(self) -> None:
        if not self._config.enabled:
            return

        with self._lock:
            self._consecutive_failures += 1
            self._failed_at = self._clock()
            if self._state is CircuitState.HALF_OPEN or (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self._config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._failed_at = None
            self._transition(CircuitState.CLOSED)

    @contextmanager
    def protect(self) -> Iterator[None]:
        """Run the enclosed Admin API call under the circuit.

        Transient errors, exhausted retries and unexpected exceptions count
        as failures. A non-retryable Admin API error counts as a success:
        the server answered.

        Raises:
            CircuitBreakerOpenError: The circuit is open; the body did not run.
        """
        if not self.allow_request():
            reopens = self.recovery_time
            raise CircuitBreakerOpenError(
                endpoint=self._endpoint,
                failure_count=self._consecutive_failures,
                recovery_at=reopens.isoformat() if reopens else None,
            )

        try:
            yield
        except AdminApiError as e:
            if e.retryable or isinstance(e, RetryLimitExceededError):
                self.record_failure()
            else:
                self.record_success()
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()

    def _maybe_half_open(self) -> None:
        # Lock held by caller.
        if self._state is not CircuitState.OPEN or self._failed_at is None:
            return
        waited = self._clock() - self._failed_at
        if waited >= timedelta(milliseconds=self._config.recovery_timeout_ms):
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        # Lock held by caller.
        previous = self._state
        self._state = new_state
        self._probes = 0
        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            endpoint=self._endpoint,
            previous=previous.value,
            state=new_state.value,
            consecutive_failures=self._consecutive_failures,
        )
        self._publish()

    def _publish(self) -> None:
        if self._metrics is None:
            return
        from patchgate.telemetry.metrics import CircuitBreakerStateValue

        self._metrics.set_circuit_breaker_state(
            self._endpoint,
            CircuitBreakerStateValue[self._state.name],
            failure_count=self._consecutive_failures,
        )


__all__ = ["CircuitBreaker", "CircuitState", "RetryPolicy"]
