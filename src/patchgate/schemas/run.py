"""Run result and run history schemas.

RunResult is the only contract the external scheduler (and any GUI) needs
to display the outcome of a run. It serializes with PascalCase keys:

    {"Success": true, "NewApprovals": 2, "Promotions": 1, "Blocked": 0, ...}
    {"Success": false, "Error": {"Message": "...", "Type": "TrackingStoreError"}, ...}

Example:
    >>> RunResult.succeeded(new_approvals=2, promotions=1, blocked=0).to_json()
    '{"Success":true,"NewApprovals":2,...}'
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from patchgate.errors import RunCancelledError


class RunError(BaseModel):
    """Error details of a failed run.

    Attributes:
        message: Human-readable error message.
        type: Exception class name.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_pascal, populate_by_name=True)

    message: str
    type: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> RunError:
        """Build error details from an exception."""
        return cls(message=str(exc) or type(exc).__name__, type=type(exc).__name__)


class RunResult(BaseModel):
    """Outcome of one coordinator run.

    Attributes:
        success: True when both phases ran and every store save succeeded.
        new_approvals: Entries opened by the approval phase.
        promotions: Entries promoted by the promotion phase.
        blocked: Entries blocked (or re-blocked) by the promotion phase.
        item_failures: Per-update or per-entry failures recovered locally.
        cancelled: True when the run stopped on a cancellation signal.
        started_at: Run start time.
        finished_at: Run end time.
        error: Failure details when success is False.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_pascal, populate_by_name=True)

    success: bool
    new_approvals: int = Field(default=0, ge=0)
    promotions: int = Field(default=0, ge=0)
    blocked: int = Field(default=0, ge=0)
    item_failures: int = Field(default=0, ge=0)
    cancelled: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: RunError | None = None

    @classmethod
    def succeeded(
        cls,
        *,
        new_approvals: int = 0,
        promotions: int = 0,
        blocked: int = 0,
        item_failures: int = 0,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> RunResult:
        """Build a successful result."""
        return cls(
            success=True,
            new_approvals=new_approvals,
            promotions=promotions,
            blocked=blocked,
            item_failures=item_failures,
            started_at=started_at,
            finished_at=finished_at,
        )

    @classmethod
    def failed(
        cls,
        exc: BaseException,
        *,
        new_approvals: int = 0,
        promotions: int = 0,
        blocked: int = 0,
        item_failures: int = 0,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> RunResult:
        """Build a failed result from the exception that ended the run.

        Counts of work completed before the failure are kept, since that
        work was already persisted.
        """
        return cls(
            success=False,
            new_approvals=new_approvals,
            promotions=promotions,
            blocked=blocked,
            item_failures=item_failures,
            cancelled=isinstance(exc, RunCancelledError),
            started_at=started_at,
            finished_at=finished_at,
            error=RunError.from_exception(exc),
        )

    def to_json(self, indent: int | None = None) -> str:
        """Serialize with the scheduler's PascalCase keys."""
        return self.model_dump_json(by_alias=True, indent=indent)


class TaskRunStatus(str, Enum):
    """Status of the last run of a task."""

    NEVER_RUN = "never_run"
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"


class TaskRunRecord(BaseModel):
    """Last-run bookkeeping for one task.

    Attributes:
        task_id: The task.
        last_run_at: When the last run finished.
        last_run_status: Outcome of the last run.
        last_run_message: Summary of the last run.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    task_id: str
    last_run_at: datetime | None = None
    last_run_status: TaskRunStatus = TaskRunStatus.NEVER_RUN
    last_run_message: str | None = Field(default=None, max_length=2048)

    @classmethod
    def from_result(cls, task_id: str, result: RunResult, at: datetime) -> TaskRunRecord:
        """Summarize a RunResult for the run history."""
        if not result.success:
            status = TaskRunStatus.FAILED
            message = result.error.message if result.error else "Run failed"
        else:
            status = TaskRunStatus.WARNING if result.item_failures else TaskRunStatus.SUCCESS
            message = (
                f"{result.new_approvals} new approvals, {result.promotions} promotions, "
                f"{result.blocked} blocked"
            )
            if result.item_failures:
                message += f", {result.item_failures} failures"
        return cls(
            task_id=task_id,
            last_run_at=at,
            last_run_status=status,
            last_run_message=message[:2048],
        )


class TaskRunHistory(BaseModel):
    """Persisted shape of the run history store."""

    model_config = ConfigDict(extra="ignore")

    runs: dict[str, TaskRunRecord] = Field(default_factory=dict)


__all__ = [
    "RunError",
    "RunResult",
    "TaskRunHistory",
    "TaskRunRecord",
    "TaskRunStatus",
]
