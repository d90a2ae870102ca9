"""Promotion phase: promote or block entries whose cooling-off elapsed.

For every open entry of the task (in_testing or blocked), in stored order:

1. Skip it until eligible_for_promotion_at. Blocked entries keep their
   original eligibility time, so they are re-evaluated on every run.
2. Refresh the installation counts from the test groups.
3. Evaluate the gates (see patchgate.staging.gates).
4. Block with the failing gate's reason, or approve for every production
   group and mark the entry promoted. Groups that refused the approval are
   named in the status message and are not retried.
5. Decline the update afterwards if a newer one supersedes it and the
   policy asks for it. A failed decline never reverts the promotion.

Any error while handling one entry leaves its status alone, records the
error in its status message, and moves on to the next entry.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from patchgate.admin.gateway import AdminGateway
from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.tracking import PROMOTED_MESSAGE, TrackingEntry
from patchgate.staging.cancellation import CancellationToken
from patchgate.staging.gates import evaluate_gates
from patchgate.telemetry.sanitization import sanitize_error_message
from patchgate.telemetry.tracing import create_span

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PromotionOutcome:
    """Result of one promotion phase.

    Attributes:
        entries: Every input entry, with this task's evaluated entries
            replaced in place.
        promotions: Entries promoted.
        blocked: Entries blocked or kept blocked.
        failures: Entries whose evaluation failed.
        skipped: Open entries still cooling off.
        cancelled: True when the phase stopped on cancellation.
    """

    entries: list[TrackingEntry]
    promotions: int = 0
    blocked: int = 0
    failures: int = 0
    skipped: int = 0
    cancelled: bool = False


@dataclass
class _Counters:
    promotions: int = 0
    blocked: int = 0
    failures: int = 0
    skipped: int = 0


class PromotionPhase:
    """Evaluates open entries against the promotion gates."""

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
    ) -> PromotionOutcome:
        """Promote or block the task's eligible entries.

        Args:
            task_id: Task whose entries are evaluated.
            policy: The task's rollout policy.
            entries: Every stored entry (all tasks).
            cancel_token: Checked before each entry.

        Returns:
            PromotionOutcome with the updated entry list.
        """
        result = list(entries)
        counters = _Counters()
        cancelled = False
        now = self._clock()

        with create_span(
            "patchgate.promotion",
            attributes={"patchgate.task_id": task_id},
        ) as span:
            for index, entry in enumerate(entries):
                if entry.task_id != task_id or not entry.is_open:
                    continue

                if cancel_token is not None and cancel_token.cancelled:
                    logger.warning("promotion_phase_cancelled", task_id=task_id)
                    cancelled = True
                    break

                if not entry.is_eligible(now):
                    counters.skipped += 1
                    continue

                result[index] = self._evaluate_entry(entry, policy, now, counters)

            span.set_attribute("patchgate.promotions", counters.promotions)
            span.set_attribute("patchgate.blocked", counters.blocked)
            span.set_attribute("patchgate.failures", counters.failures)

        logger.info(
            "promotion_phase_completed",
            task_id=task_id,
            promotions=counters.promotions,
            blocked=counters.blocked,
            failures=counters.failures,
            skipped=counters.skipped,
            cancelled=cancelled,
        )
        return PromotionOutcome(
            entries=result,
            promotions=counters.promotions,
            blocked=counters.blocked,
            failures=counters.failures,
            skipped=counters.skipped,
            cancelled=cancelled,
        )

    def _evaluate_entry(
        self,
        entry: TrackingEntry,
        policy: RolloutPolicy,
        now: datetime,
        counters: _Counters,
    ) -> TrackingEntry:
        log = logger.bind(task_id=entry.task_id, update_id=entry.update_id)
        try:
            with create_span(
                "patchgate.promotion.entry",
                attributes={
                    "patchgate.task_id": entry.task_id,
                    "patchgate.update_id": entry.update_id,
                    "patchgate.status": entry.status.value,
                },
            ):
                outcome = self._gateway.get_installation_outcome(
                    entry.update_id, policy.test_group_ids
                ).unwrap()
                entry = entry.with_outcome(outcome)

                decision = evaluate_gates(policy, outcome)
                if not decision.promote:
                    counters.blocked += 1
                    log.warning(
                        "update_blocked",
                        reason=decision.reason,
                        installed=outcome.installed,
                        failed=outcome.failed,
                        pending=outcome.pending,
                    )
                    return entry.block(decision.reason or "Blocked")

                entry = self._promote(entry, policy, now)
                counters.promotions += 1
                return entry
        except Exception as e:
            counters.failures += 1
            log.error("promotion_evaluation_failed", error=str(e), error_type=type(e).__name__)
            return entry.with_error(sanitize_error_message(str(e)))

    def _promote(
        self,
        entry: TrackingEntry,
        policy: RolloutPolicy,
        now: datetime,
    ) -> TrackingEntry:
        failed_groups: list[str] = []
        for group_id in policy.production_group_ids:
            if not self._gateway.approve_update(entry.update_id, group_id).ok:
                failed_groups.append(group_id)

        message = PROMOTED_MESSAGE
        if failed_groups:
            message += f" (failed for: {', '.join(failed_groups)})"
        promoted = entry.promote(now, message)
        logger.info(
            "update_promoted",
            task_id=entry.task_id,
            update_id=entry.update_id,
            reference_code=entry.reference_code,
            installed=entry.successful_installations,
            failed_groups=failed_groups or None,
        )

        if policy.decline_superseded_updates:
            self._decline_if_superseded(promoted)
        return promoted

    def _decline_if_superseded(self, entry: TrackingEntry) -> None:
        superseded = self._gateway.is_superseded(entry.update_id)
        if not superseded.ok:
            logger.warning(
                "supersession_check_failed",
                update_id=entry.update_id,
                error=str(superseded.error),
            )
            return
        if not superseded.value:
            return

        declined = self._gateway.decline_update(entry.update_id)
        if declined.ok:
            logger.info("superseded_update_declined", update_id=entry.update_id)
        else:
            logger.warning(
                "superseded_decline_failed",
                update_id=entry.update_id,
                error=str(declined.error),
            )


__all__ = ["PromotionOutcome", "PromotionPhase"]
