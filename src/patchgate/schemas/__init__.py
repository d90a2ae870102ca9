"""Pydantic schemas for patchgate.

Exports:
    RolloutPolicy: Staged approval configuration of one task.
    TrackingEntry, TrackingStatus, TrackingCollection: Tracking store records.
    UpdateSummary, InstallationOutcome: Admin API records.
    AdminConnectionConfig, ResilienceConfig: Admin API connection settings.
    RunResult, RunError, TaskRunRecord: Run outcome and history.
    TaskDefinition, TaskFile: Task file.
"""

from __future__ import annotations

from patchgate.schemas.admin import (
    AdminConnectionConfig,
    CircuitBreakerConfig,
    ResilienceConfig,
    RetryConfig,
)
from patchgate.schemas.policy import DEFAULT_CLASSIFICATIONS, RolloutPolicy
from patchgate.schemas.run import (
    RunError,
    RunResult,
    TaskRunHistory,
    TaskRunRecord,
    TaskRunStatus,
)
from patchgate.schemas.tasks import TaskDefinition, TaskFile
from patchgate.schemas.tracking import (
    OPEN_STATUSES,
    TrackingCollection,
    TrackingEntry,
    TrackingStatus,
)
from patchgate.schemas.updates import InstallationOutcome, UpdateSummary

__all__ = [
    "AdminConnectionConfig",
    "CircuitBreakerConfig",
    "DEFAULT_CLASSIFICATIONS",
    "InstallationOutcome",
    "OPEN_STATUSES",
    "ResilienceConfig",
    "RetryConfig",
    "RolloutPolicy",
    "RunError",
    "RunResult",
    "TaskDefinition",
    "TaskFile",
    "TaskRunHistory",
    "TaskRunRecord",
    "TaskRunStatus",
    "TrackingCollection",
    "TrackingEntry",
    "TrackingStatus",
    "UpdateSummary",
]
