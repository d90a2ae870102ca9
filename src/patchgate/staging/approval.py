"""Approval phase: open tracking entries for newly available updates.

For each unapproved update matching the policy's classifications, in the
order the server returns them:

1. Skip it if the task already tracks it. This makes the phase safe to
   re-run after a crash: an update approved and saved last time is never
   approved twice.
2. Approve it for every test group.
3. Open an in_testing entry if at least one test group accepted it.

A failing update is logged and counted; the scan moves on to the next one.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from patchgate.admin.gateway import AdminGateway
from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.tracking import APPROVED_FOR_TEST_MESSAGE, TrackingEntry
from patchgate.schemas.updates import UpdateSummary
from patchgate.staging.cancellation import CancellationToken
from patchgate.telemetry.tracing import create_span

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of one approval phase.

    Attributes:
        entries: Input entries unchanged, followed by the newly opened ones.
        new_approvals: Number of entries opened.
        failures: Updates that could not be approved for any test group, plus
            one for a failed update query.
        cancelled: True when the phase stopped on cancellation.
    """

    entries: list[TrackingEntry]
    new_approvals: int = 0
    failures: int = 0
    cancelled: bool = False


class ApprovalPhase:
    """Discovers candidate updates and approves them for test groups."""

    def __init__(
        self,
        gateway: AdminGateway,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self._clock = clock

    def run(
        self,
        task_id: str,
        policy: RolloutPolicy,
        entries: Sequence[TrackingEntry],
        cancel_token: CancellationToken | None = None,
    ) -> ApprovalOutcome:
        """Approve new candidates for the task's test groups.

        Args:
            task_id: Task that will own the new entries.
            policy: The task's rollout policy.
            entries: Every stored entry (all tasks).
            cancel_token: Checked before each candidate.

        Returns:
            ApprovalOutcome with the updated entry list.
        """
        result = list(entries)
        tracked = {e.update_id for e in entries if e.task_id == task_id}

        with create_span(
            "patchgate.approval",
            attributes={"patchgate.task_id": task_id},
        ) as span:
            query = self._gateway.list_unapproved_updates(policy.update_classifications)
            if not query.ok:
                logger.error(
                    "candidate_query_failed",
                    task_id=task_id,
                    error=str(query.error),
                )
                return ApprovalOutcome(entries=result, failures=1)

            candidates = query.value or []
            logger.info(
                "approval_phase_started",
                task_id=task_id,
                candidates=len(candidates),
                classifications=policy.update_classifications or "all",
            )

            new_approvals = 0
            failures = 0
            cancelled = False
            for summary in candidates:
                if cancel_token is not None and cancel_token.cancelled:
                    logger.warning("approval_phase_cancelled", task_id=task_id)
                    cancelled = True
                    break

                if summary.id in tracked:
                    logger.debug("update_already_tracked", task_id=task_id, update_id=summary.id)
                    continue
                tracked.add(summary.id)

                entry = self._approve_for_test(task_id, policy, summary)
                if entry is None:
                    failures += 1
                    continue

                result.append(entry)
                new_approvals += 1

            span.set_attribute("patchgate.new_approvals", new_approvals)
            span.set_attribute("patchgate.failures", failures)

        logger.info(
            "approval_phase_completed",
            task_id=task_id,
            new_approvals=new_approvals,
            failures=failures,
            cancelled=cancelled,
        )
        return ApprovalOutcome(
            entries=result,
            new_approvals=new_approvals,
            failures=failures,
            cancelled=cancelled,
        )

    def _approve_for_test(
        self,
        task_id: str,
        policy: RolloutPolicy,
        summary: UpdateSummary,
    ) -> TrackingEntry | None:
        failed_groups: list[str] = []
        for group_id in policy.test_group_ids:
            if not self._gateway.approve_update(summary.id, group_id).ok:
                failed_groups.append(group_id)

        if len(failed_groups) == len(policy.test_group_ids):
            logger.error(
                "test_approval_failed",
                task_id=task_id,
                update_id=summary.id,
                reference_code=summary.reference_code,
                groups=failed_groups,
            )
            return None

        message = APPROVED_FOR_TEST_MESSAGE
        if failed_groups:
            message += f" (failed for: {', '.join(failed_groups)})"
            logger.warning(
                "test_approval_partial",
                task_id=task_id,
                update_id=summary.id,
                failed_groups=failed_groups,
            )

        entry = TrackingEntry.open(
            summary,
            task_id=task_id,
            approved_at=self._clock(),
            cooling_off=policy.cooling_off,
            message=message,
        )
        logger.info(
            "update_approved_for_test",
            task_id=task_id,
            update_id=summary.id,
            reference_code=summary.reference_code,
            title=summary.title,
            eligible_for_promotion_at=entry.eligible_for_promotion_at.isoformat(),
        )
        return entry


__all__ = ["ApprovalOutcome", "ApprovalPhase"]
