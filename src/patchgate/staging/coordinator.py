"""Run coordinator: one scheduled tick of a staged approval task.

Sequence:
    validate policy -> load -> approval phase -> save
                    -> load -> promotion phase -> save
                    -> record run history

Each phase reads the store once and writes it once, so an interrupted run
loses at most the phase in flight and re-running immediately is safe. A
failing phase is logged and treated as having done nothing. Only
configuration and persistence errors end a run early.

Example:
    >>> result = run_task("security-rollout", policy, Path("/var/lib/patchgate"),
    ...                   connection)
    >>> print(result.to_json())
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import structlog

from patchgate.admin.client import AdminClient, HttpAdminClient
from patchgate.admin.gateway import AdminGateway
from patchgate.errors import ConfigurationError, PatchgateError, RunCancelledError
from patchgate.schemas.admin import AdminConnectionConfig
from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.run import RunResult, TaskRunRecord
from patchgate.schemas.tracking import TrackingEntry
from patchgate.staging.approval import ApprovalOutcome, ApprovalPhase
from patchgate.staging.cancellation import CancellationToken
from patchgate.staging.history import RunHistoryStore
from patchgate.staging.promotion import PromotionOutcome, PromotionPhase
from patchgate.staging.store import TrackingStore
from patchgate.telemetry.metrics import RolloutMetrics
from patchgate.telemetry.tracing import create_span, record_error

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RunCounts:
    new_approvals: int = 0
    promotions: int = 0
    blocked: int = 0
    item_failures: int = 0

    def as_kwargs(self) -> dict[str, int]:
        return {
            "new_approvals": self.new_approvals,
            "promotions": self.promotions,
            "blocked": self.blocked,
            "item_failures": self.item_failures,
        }


class RunCoordinator:
    """Runs the approval and promotion phases of one task.

    Attributes:
        task_id: The task being run.
        policy: The task's rollout policy.
    """

    def __init__(
        self,
        task_id: str,
        policy: RolloutPolicy,
        store: TrackingStore,
        gateway: AdminGateway,
        *,
        clock: Callable[[], datetime] = _utcnow,
        history: RunHistoryStore | None = None,
        metrics: RolloutMetrics | None = None,
    ) -> None:
        """Initialize RunCoordinator.

        Args:
            task_id: Task identifier; owns the tracking entries it creates.
            policy: Rollout policy of the task.
            store: Tracking store.
            gateway: Admin API gateway.
            clock: Source of the current UTC time.
            history: Optional run history store.
            metrics: Optional metrics collector.
        """
        self.task_id = task_id
        self.policy = policy
        self._store = store
        self._gateway = gateway
        self._clock = clock
        self._history = history
        self._metrics = metrics
        self._approval = ApprovalPhase(gateway, clock=clock)
        self._promotion = PromotionPhase(gateway, clock=clock)

    def run(self, cancel_token: CancellationToken | None = None) -> RunResult:
        """Execute one run.

        Never raises for expected failures: configuration, persistence,
        cancellation and unexpected errors are all reported in the RunResult.

        Args:
            cancel_token: Optional token checked between items and phases.

        Returns:
            RunResult describing the run.
        """
        started_at = self._clock()
        start = time.monotonic()
        counts = _RunCounts()
        log = logger.bind(task_id=self.task_id)
        log.info("run_started")

        with create_span("patchgate.run", attributes={"patchgate.task_id": self.task_id}) as span:
            try:
                self._execute(counts, cancel_token)
            except RunCancelledError as e:
                log.warning("run_cancelled", **counts.as_kwargs())
                result = RunResult.failed(
                    e, started_at=started_at, finished_at=self._clock(), **counts.as_kwargs()
                )
            except PatchgateError as e:
                record_error(span, e)
                log.error("run_failed", error=str(e), error_type=type(e).__name__)
                result = RunResult.failed(
                    e, started_at=started_at, finished_at=self._clock(), **counts.as_kwargs()
                )
            except Exception as e:
                record_error(span, e)
                log.exception("run_failed_unexpectedly", error=str(e))
                result = RunResult.failed(
                    e, started_at=started_at, finished_at=self._clock(), **counts.as_kwargs()
                )
            else:
                result = RunResult.succeeded(
                    started_at=started_at, finished_at=self._clock(), **counts.as_kwargs()
                )
            span.set_attribute("patchgate.success", result.success)

        duration = time.monotonic() - start
        log.info(
            "run_completed",
            success=result.success,
            cancelled=result.cancelled,
            duration_seconds=round(duration, 3),
            **counts.as_kwargs(),
        )
        if self._metrics is not None:
            self._metrics.record_run(
                self.task_id,
                duration_seconds=duration,
                success=result.success,
                new_approvals=result.new_approvals,
                promotions=result.promotions,
                blocked=result.blocked,
            )
        self._record_history(result)
        return result

    def _execute(self, counts: _RunCounts, cancel_token: CancellationToken | None) -> None:
        problems = self.policy.configuration_problems()
        if problems:
            raise ConfigurationError(f"Task '{self.task_id}' cannot run", problems)

        entries = self._store.load()
        approval = self._run_approval(entries, cancel_token)
        self._store.save(approval.entries)
        counts.new_approvals = approval.new_approvals
        counts.item_failures += approval.failures
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        entries = self._store.load()
        promotion = self._run_promotion(entries, cancel_token)
        self._store.save(promotion.entries)
        counts.promotions = promotion.promotions
        counts.blocked = promotion.blocked
        counts.item_failures += promotion.failures
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

    def _run_approval(
        self, entries: list[TrackingEntry], cancel_token: CancellationToken | None
    ) -> ApprovalOutcome:
        try:
            return self._approval.run(self.task_id, self.policy, entries, cancel_token)
        except Exception as e:
            logger.exception("approval_phase_failed", task_id=self.task_id, error=str(e))
            return ApprovalOutcome(entries=entries, failures=1)

    def _run_promotion(
        self, entries: list[TrackingEntry], cancel_token: CancellationToken | None
    ) -> PromotionOutcome:
        try:
            return self._promotion.run(self.task_id, self.policy, entries, cancel_token)
        except Exception as e:
            logger.exception("promotion_phase_failed", task_id=self.task_id, error=str(e))
            return PromotionOutcome(entries=entries, failures=1)

    def _record_history(self, result: RunResult) -> None:
        if self._history is None:
            return
        record = TaskRunRecord.from_result(
            self.task_id, result, result.finished_at or self._clock()
        )
        try:
            self._history.record(record)
        except PatchgateError as e:
            logger.warning("run_history_write_failed", task_id=self.task_id, error=str(e))


def run_task(
    task_id: str,
    policy: RolloutPolicy,
    data_dir: Path | str,
    connection: AdminConnectionConfig,
    *,
    client: AdminClient | None = None,
    cancel_token: CancellationToken | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> RunResult:
    """Run one task end to end.

    Builds the store, gateway, metrics and run history for data_dir and
    connection, runs the coordinator, and returns its result. Never raises.

    Args:
        task_id: Task identifier.
        policy: The task's rollout policy.
        data_dir: Directory of the tracking and history files.
        connection: Admin API connection settings.
        client: AdminClient to use instead of an HttpAdminClient.
        cancel_token: Optional cancellation token.
        clock: Source of the current UTC time.

    Returns:
        RunResult of the run.
    """
    owns_client = client is None
    started_at = clock()
    try:
        admin = client if client is not None else HttpAdminClient(connection)
    except Exception as e:
        logger.exception("admin_client_init_failed", task_id=task_id, error=str(e))
        return RunResult.failed(e, started_at=started_at, finished_at=clock())

    try:
        metrics = RolloutMetrics()
        coordinator = RunCoordinator(
            task_id,
            policy,
            TrackingStore(data_dir, clock=clock),
            AdminGateway.from_connection(admin, connection, metrics=metrics),
            clock=clock,
            history=RunHistoryStore(data_dir),
            metrics=metrics,
        )
        return coordinator.run(cancel_token)
    finally:
        if owns_client:
            admin.close()


__all__ = ["RunCoordinator", "run_task"]
