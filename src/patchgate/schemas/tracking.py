"""Tracking entry schemas for the staged approval workflow.

One TrackingEntry exists per (update, task) pair. Entries are created by the
approval phase, mutated only by the promotion phase, and never deleted by
the engine, so the tracking store doubles as an audit trail.

Entries are frozen. Every transition returns a new entry, which keeps the
immutable fields (approval time, eligibility time, promotion time) from
being rewritten by accident.

State Transitions:
    in_testing -> blocked     gates failed
    in_testing -> promoted    gates passed
    blocked    -> blocked     gates still failing on a later run
    blocked    -> promoted    gates passed on a later run
    promoted is terminal.

Example:
    >>> entry = TrackingEntry.open(summary, task_id="security", approved_at=now,
    ...                            cooling_off=timedelta(days=7))
    >>> entry = entry.with_outcome(InstallationOutcome(installed=3))
    >>> entry = entry.promote(at=later)
    >>> entry.status
    <TrackingStatus.PROMOTED: 'promoted'>
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from patchgate.errors import InvalidTransitionError
from patchgate.schemas.updates import InstallationOutcome, UpdateSummary

MAX_STATUS_MESSAGE_LENGTH = 1024

APPROVED_FOR_TEST_MESSAGE = "Approved for test group"
PROMOTED_MESSAGE = "Promoted to production"

_ERROR_PREFIX = "Error: "
_ERROR_SEPARATOR = "; Error: "


class TrackingStatus(str, Enum):
    """Status of an update in the staged approval workflow.

    Attributes:
        IN_TESTING: Approved for test groups, cooling-off not yet evaluated.
        BLOCKED: Gates failed on the last evaluation; re-evaluated every run.
        PROMOTED: Approved for production groups. Terminal.
    """

    IN_TESTING = "in_testing"
    BLOCKED = "blocked"
    PROMOTED = "promoted"


OPEN_STATUSES = frozenset({TrackingStatus.IN_TESTING, TrackingStatus.BLOCKED})


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _truncate(message: str) -> str:
    if len(message) <= MAX_STATUS_MESSAGE_LENGTH:
        return message
    return message[: MAX_STATUS_MESSAGE_LENGTH - 3] + "..."


class TrackingEntry(BaseModel):
    """Tracks one update rolled out under one task.

    Attributes:
        update_id: Server identifier of the update. Immutable key.
        task_id: Rollout task that owns this entry.
        title: Update title captured at approval time.
        reference_code: Knowledge-base article number captured at approval time.
        status: Current workflow status.
        approved_for_test_at: When the update was approved for test groups.
        eligible_for_promotion_at: approved_for_test_at plus the cooling-off
            period. Never recomputed.
        promoted_at: When the update was promoted. Set exactly once.
        successful_installations: Test-group installs that succeeded.
        failed_installations: Test-group installs that failed.
        pending_installations: Test-group installs still pending.
        status_message: Rationale of the last decision or error.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    update_id: str = Field(..., min_length=1)
    task_id: str = Field(..., min_length=1)
    title: str = Field(default="", max_length=512)
    reference_code: str | None = Field(default=None, max_length=32)
    status: TrackingStatus = TrackingStatus.IN_TESTING
    approved_for_test_at: datetime
    eligible_for_promotion_at: datetime
    promoted_at: datetime | None = None
    successful_installations: int = Field(default=0, ge=0)
    failed_installations: int = Field(default=0, ge=0)
    pending_installations: int = Field(default=0, ge=0)
    status_message: str | None = Field(default=None, max_length=MAX_STATUS_MESSAGE_LENGTH)

    @field_validator("approved_for_test_at", "eligible_for_promotion_at", "promoted_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_timestamps(self) -> TrackingEntry:
        if self.eligible_for_promotion_at < self.approved_for_test_at:
            raise ValueError("eligible_for_promotion_at precedes approved_for_test_at")
        if self.status == TrackingStatus.PROMOTED and self.promoted_at is None:
            raise ValueError("promoted entries require promoted_at")
        if self.status != TrackingStatus.PROMOTED and self.promoted_at is not None:
            raise ValueError("promoted_at is only set on promoted entries")
        return self

    @classmethod
    def open(
        cls,
        summary: UpdateSummary,
        *,
        task_id: str,
        approved_at: datetime,
        cooling_off: timedelta,
        message: str = APPROVED_FOR_TEST_MESSAGE,
    ) -> TrackingEntry:
        """Create the entry for an update just approved for test groups.

        Args:
            summary: The approved update.
            task_id: Owning rollout task.
            approved_at: Approval time.
            cooling_off: Delay before the entry becomes eligible for promotion.
            message: Initial status message.

        Returns:
            A new in_testing entry with zeroed installation counts.
        """
        approved_at = _as_utc(approved_at)
        return cls(
            update_id=summary.id,
            task_id=task_id,
            title=summary.title[:512],
            reference_code=summary.reference_code[:32] if summary.reference_code else None,
            status=TrackingStatus.IN_TESTING,
            approved_for_test_at=approved_at,
            eligible_for_promotion_at=approved_at + cooling_off,
            status_message=_truncate(message),
        )

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the entry: (update_id, task_id)."""
        return (self.update_id, self.task_id)

    @property
    def is_open(self) -> bool:
        """True while the entry can still be evaluated for promotion."""
        return self.status in OPEN_STATUSES

    def is_eligible(self, now: datetime) -> bool:
        """Check whether the cooling-off period has elapsed.

        Args:
            now: Current time.

        Returns:
            True once now reaches eligible_for_promotion_at.
        """
        return _as_utc(now) >= self.eligible_for_promotion_at

    def with_outcome(self, outcome: InstallationOutcome) -> TrackingEntry:
        """Overwrite the installation counts with a fresh outcome."""
        return self.model_copy(
            update={
                "successful_installations": outcome.installed,
                "failed_installations": outcome.failed,
                "pending_installations": outcome.pending,
            }
        )

    def block(self, reason: str) -> TrackingEntry:
        """Transition to blocked with the failing gate as the message.

        Raises:
            InvalidTransitionError: If the entry is already promoted.
        """
        self._ensure_open(TrackingStatus.BLOCKED)
        return self.model_copy(
            update={"status": TrackingStatus.BLOCKED, "status_message": _truncate(reason)}
        )

    def promote(self, at: datetime, message: str = PROMOTED_MESSAGE) -> TrackingEntry:
        """Transition to promoted and stamp promoted_at.

        Raises:
            InvalidTransitionError: If the entry is already promoted.
        """
        self._ensure_open(TrackingStatus.PROMOTED)
        return self.model_copy(
            update={
                "status": TrackingStatus.PROMOTED,
                "promoted_at": _as_utc(at),
                "status_message": _truncate(message),
            }
        )

    def with_error(self, error: str) -> TrackingEntry:
        """Record an error after the last decision message, leaving the status unchanged.

        An error appended by an earlier run is replaced, so the message always
        carries the newest failure. The decision text is shortened first when
        the combined message would exceed MAX_STATUS_MESSAGE_LENGTH.
        """
        error_text = _truncate(f"{_ERROR_PREFIX}{error}")
        decision = (self.status_message or "").split(_ERROR_SEPARATOR, 1)[0]
        if decision.startswith(_ERROR_PREFIX):
            decision = ""
        if not decision:
            return self.model_copy(update={"status_message": error_text})

        room = MAX_STATUS_MESSAGE_LENGTH - len(error_text) - 2
        if room < 4:
            return self.model_copy(update={"status_message": error_text})
        if len(decision) > room:
            decision = decision[: room - 3] + "..."
        message = f"{decision}; {error_text}"
        return self.model_copy(update={"status_message": message})

    def _ensure_open(self, target: TrackingStatus) -> None:
        if not self.is_open:
            raise InvalidTransitionError(self.update_id, self.status.value, target.value)


class TrackingCollection(BaseModel):
    """Persisted shape of the tracking store.

    Attributes:
        entries: All tracked entries, across every task.
        last_updated: When the collection was last saved.
    """

    model_config = ConfigDict(extra="ignore")

    entries: list[TrackingEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def duplicate_keys(self) -> list[tuple[str, str]]:
        """Return (update_id, task_id) keys that appear more than once."""
        seen: set[tuple[str, str]] = set()
        duplicates: list[tuple[str, str]] = []
        for entry in self.entries:
            if entry.key in seen and entry.key not in duplicates:
                duplicates.append(entry.key)
            seen.add(entry.key)
        return duplicates


__all__ = [
    "APPROVED_FOR_TEST_MESSAGE",
    "MAX_STATUS_MESSAGE_LENGTH",
    "OPEN_STATUSES",
    "PROMOTED_MESSAGE",
    "TrackingCollection",
    "TrackingEntry",
    "TrackingStatus",
]
