"""Resilient façade over an AdminClient.

Every call goes through the circuit breaker and retry policy, is traced
as a ``patchgate.admin.<operation>`` span, is counted in
``patchgate_admin_calls_total``, and comes back as an ApiResult rather than
raising. Only AdminApiError is converted; anything else is a bug and
propagates.

Example:
    >>> gateway = AdminGateway.from_connection(client, connection)
    >>> result = gateway.approve_update("u-1", "pilot")
    >>> result.ok
    True
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

import structlog

from patchgate.admin.client import AdminClient
from patchgate.admin.resilience import CircuitBreaker, RetryPolicy
from patchgate.admin.results import ApiResult
from patchgate.errors import AdminApiError
from patchgate.schemas.admin import AdminConnectionConfig
from patchgate.schemas.updates import InstallationOutcome, UpdateSummary
from patchgate.telemetry.metrics import RolloutMetrics
from patchgate.telemetry.tracing import create_span, record_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class AdminGateway:
    """Admin API operations with retry, circuit breaking and telemetry.

    Attributes:
        client: Underlying AdminClient.
        circuit: Circuit breaker shared by all operations of this server.
    """

    def __init__(
        self,
        client: AdminClient,
        *,
        retry: RetryPolicy | None = None,
        circuit: CircuitBreaker | None = None,
        metrics: RolloutMetrics | None = None,
    ) -> None:
        self._client = client
        self._retry = retry or RetryPolicy()
        self._metrics = metrics
        self._circuit = circuit or CircuitBreaker("admin", metrics=metrics)

    @classmethod
    def from_connection(
        cls,
        client: AdminClient,
        connection: AdminConnectionConfig,
        *,
        metrics: RolloutMetrics | None = None,
    ) -> AdminGateway:
        """Build a gateway using a connection's resilience settings."""
        resilience = connection.resilience
        return cls(
            client,
            retry=RetryPolicy(resilience.retry),
            circuit=CircuitBreaker(
                connection.endpoint, resilience.circuit_breaker, metrics=metrics
            ),
            metrics=metrics,
        )

    @property
    def client(self) -> AdminClient:
        return self._client

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    def list_unapproved_updates(
        self, classifications: Sequence[str]
    ) -> ApiResult[list[UpdateSummary]]:
        return self._call(
            "list_unapproved_updates",
            lambda: self._client.list_unapproved_updates(classifications),
        )

    def approve_update(self, update_id: str, group_id: str) -> ApiResult[None]:
        return self._call(
            "approve_update",
            lambda: self._client.approve_update(update_id, group_id),
            update_id=update_id,
            group_id=group_id,
        )

    def decline_update(self, update_id: str) -> ApiResult[None]:
        return self._call(
            "decline_update",
            lambda: self._client.decline_update(update_id),
            update_id=update_id,
        )

    def get_installation_outcome(
        self, update_id: str, group_ids: Sequence[str]
    ) -> ApiResult[InstallationOutcome]:
        return self._call(
            "get_installation_outcome",
            lambda: self._client.get_installation_outcome(update_id, group_ids),
            update_id=update_id,
        )

    def is_superseded(self, update_id: str) -> ApiResult[bool]:
        return self._call(
            "is_superseded",
            lambda: self._client.is_superseded(update_id),
            update_id=update_id,
        )

    def _call(
        self,
        operation: str,
        func: Callable[[], T],
        *,
        update_id: str | None = None,
        group_id: str | None = None,
    ) -> ApiResult[T]:
        attributes = {
            "patchgate.admin.operation": operation,
            "patchgate.update_id": update_id,
            "patchgate.group_id": group_id,
        }
        with create_span(f"patchgate.admin.{operation}", attributes=attributes) as span:
            try:
                with self._circuit.protect():
                    value = self._retry.call(operation, func)
            except AdminApiError as e:
                record_error(span, e)
                logger.warning(
                    "admin_call_failed",
                    operation=operation,
                    update_id=update_id,
                    group_id=group_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._record(operation, success=False)
                return ApiResult.failure(e)

        self._record(operation, success=True)
        return ApiResult.success(value)

    def _record(self, operation: str, *, success: bool) -> None:
        if self._metrics is not None:
            self._metrics.record_admin_call(operation, success=success)


__all__ = ["AdminGateway"]
