"""Unit tests for Admin API retry and circuit breaker.

Example:
    pytest tests/unit/admin/test_resilience.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from patchgate.admin.resilience import CircuitBreaker, CircuitState, RetryPolicy
from patchgate.errors import (
    AdminRequestError,
    AdminTimeoutError,
    AdminUnavailableError,
    CircuitBreakerOpenError,
    RetryLimitExceededError,
    UpdateNotFoundError,
)
from patchgate.schemas.admin import CircuitBreakerConfig, RetryConfig
from patchgate.telemetry.metrics import CircuitBreakerStateValue

T0 = datetime(2024, 1, 9, 3, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


class TestRetryPolicyBackoff:
    """Exponential backoff delays."""

    @pytest.mark.requirement("RES-001")
    def test_default_config(self) -> None:
        config = RetryConfig()

        assert config.max_attempts == 3
        assert config.initial_delay_ms == 1000
        assert config.backoff_multiplier == pytest.approx(2.0)
        assert config.jitter is True

    @pytest.mark.requirement("RES-001")
    def test_calculate_delay_without_jitter(self) -> None:
        policy = RetryPolicy(RetryConfig(initial_delay_ms=1000, jitter=False))

        assert policy.calculate_delay(0) == pytest.approx(1.0)
        assert policy.calculate_delay(1) == pytest.approx(2.0)
        assert policy.calculate_delay(2) == pytest.approx(4.0)

    @pytest.mark.requirement("RES-001")
    def test_delay_capped_at_max(self) -> None:
        policy = RetryPolicy(RetryConfig(initial_delay_ms=1000, max_delay_ms=3000, jitter=False))
        assert policy.calculate_delay(5) == pytest.approx(3.0)

    @pytest.mark.requirement("RES-001")
    def test_jitter_stays_within_25_percent(self) -> None:
        policy = RetryPolicy(RetryConfig(initial_delay_ms=1000, jitter=True))
        for _ in range(50):
            assert 0.75 <= policy.calculate_delay(0) <= 1.25


class TestRetryPolicyCall:
    """Retrying transient failures."""

    @pytest.mark.requirement("RES-002")
    def test_transient_failure_retried_until_success(self) -> None:
        func = MagicMock(side_effect=[AdminTimeoutError("op", "slow"), "ok"])
        policy = RetryPolicy(RetryConfig(max_attempts=3, jitter=False))

        with patch("patchgate.admin.resilience.time.sleep") as mock_sleep:
            assert policy.call("op", func) == "ok"

        assert func.call_count == 2
        mock_sleep.assert_called_once_with(pytest.approx(1.0))

    @pytest.mark.requirement("RES-002")
    def test_exhausted_retries_raise_retry_limit(self) -> None:
        last = AdminUnavailableError("op", "down")
        func = MagicMock(side_effect=[AdminUnavailableError("op", "down"), last, last])
        policy = RetryPolicy(RetryConfig(max_attempts=3, jitter=False))

        with patch("patchgate.admin.resilience.time.sleep") as mock_sleep:
            with pytest.raises(RetryLimitExceededError) as exc_info:
                policy.call("op", func)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert [c.args[0] for c in mock_sleep.call_args_list] == [
            pytest.approx(1.0),
            pytest.approx(2.0),
        ]

    @pytest.mark.requirement("RES-002")
    def test_non_retryable_error_raised_immediately(self) -> None:
        func = MagicMock(side_effect=UpdateNotFoundError("op", "u-1"))
        policy = RetryPolicy(RetryConfig(max_attempts=3))

        with patch("patchgate.admin.resilience.time.sleep") as mock_sleep:
            with pytest.raises(UpdateNotFoundError):
                policy.call("op", func)

        assert func.call_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.requirement("RES-002")
    def test_arguments_forwarded(self) -> None:
        func = MagicMock(return_value=None)
        RetryPolicy().call("approve_update", func, "u-1", group="pilot")
        func.assert_called_once_with("u-1", group="pilot")


class TestCircuitBreaker:
    """Three-state circuit breaker."""

    @pytest.mark.requirement("RES-003")
    def test_starts_closed(self) -> None:
        assert CircuitBreaker("wsus:8530").state == CircuitState.CLOSED

    @pytest.mark.requirement("RES-003")
    def test_opens_after_threshold(self) -> None:
        circuit = CircuitBreaker("wsus:8530", CircuitBreakerConfig(failure_threshold=3))

        for _ in range(2):
            circuit.record_failure()
        assert circuit.state == CircuitState.CLOSED

        circuit.record_failure()
        assert circuit.state == CircuitState.OPEN
        assert not circuit.allow_request()

    @pytest.mark.requirement("RES-003")
    def test_open_circuit_fails_fast_with_recovery_time(self) -> None:
        clock = _Clock()
        circuit = CircuitBreaker(
            "wsus:8530",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=5000),
            clock=clock,
        )
        circuit.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            with circuit.protect():
                pass

        assert exc_info.value.endpoint == "wsus:8530"
        assert exc_info.value.recovery_at == (T0 + timedelta(seconds=5)).isoformat()

    @pytest.mark.requirement("RES-003")
    def test_half_open_probe_closes_on_success(self) -> None:
        clock = _Clock()
        circuit = CircuitBreaker(
            "wsus:8530",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=1000),
            clock=clock,
        )
        circuit.record_failure()
        clock.now = T0 + timedelta(seconds=2)

        assert circuit.state == CircuitState.HALF_OPEN
        with circuit.protect():
            pass
        assert circuit.state == CircuitState.CLOSED
        assert circuit.failure_count == 0

    @pytest.mark.requirement("RES-003")
    def test_half_open_probe_failure_reopens(self) -> None:
        clock = _Clock()
        circuit = CircuitBreaker(
            "wsus:8530",
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout_ms=1000),
            clock=clock,
        )
        circuit.record_failure()
        clock.now = T0 + timedelta(seconds=2)

        with pytest.raises(AdminTimeoutError):
            with circuit.protect():
                raise AdminTimeoutError("op", "slow")

        assert circuit.state == CircuitState.OPEN

    @pytest.mark.requirement("RES-004")
    def test_non_retryable_errors_do_not_count(self) -> None:
        circuit = CircuitBreaker("wsus:8530", CircuitBreakerConfig(failure_threshold=1))

        with pytest.raises(AdminRequestError):
            with circuit.protect():
                raise AdminRequestError("approve_update", 400)

        assert circuit.state == CircuitState.CLOSED
        assert circuit.failure_count == 0

    @pytest.mark.requirement("RES-004")
    def test_exhausted_retries_count(self) -> None:
        circuit = CircuitBreaker("wsus:8530", CircuitBreakerConfig(failure_threshold=1))

        with pytest.raises(RetryLimitExceededError):
            with circuit.protect():
                raise RetryLimitExceededError("op", 3, AdminTimeoutError("op", "slow"))

        assert circuit.state == CircuitState.OPEN

    @pytest.mark.requirement("RES-003")
    def test_disabled_circuit_never_opens(self) -> None:
        circuit = CircuitBreaker(
            "wsus:8530", CircuitBreakerConfig(enabled=False, failure_threshold=1)
        )
        for _ in range(5):
            circuit.record_failure()
        assert circuit.allow_request()
        assert circuit.failure_count == 0

    @pytest.mark.requirement("RES-003")
    def test_reset(self) -> None:
        circuit = CircuitBreaker("wsus:8530", CircuitBreakerConfig(failure_threshold=1))
        circuit.record_failure()

        circuit.reset()

        assert circuit.state == CircuitState.CLOSED
        assert circuit.recovery_time is None


class TestCircuitBreakerMetrics:
    """State gauge emission."""

    @pytest.mark.requirement("RES-005")
    def test_state_changes_emitted(self) -> None:
        metrics = MagicMock()
        circuit = CircuitBreaker(
            "wsus:8530", CircuitBreakerConfig(failure_threshold=1), metrics=metrics
        )
        circuit.record_failure()

        states = [c.args[1] for c in metrics.set_circuit_breaker_state.call_args_list]
        assert states == [CircuitBreakerStateValue.CLOSED, CircuitBreakerStateValue.OPEN]
