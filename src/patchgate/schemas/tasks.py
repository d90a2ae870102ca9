"""Task file schemas.

A task file names the Admin API connection and the rollout tasks the OS
scheduler triggers. Each task owns its own tracking entries (keyed by the
task id) and its own RolloutPolicy.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from patchgate.errors import ConfigurationError
from patchgate.schemas.admin import AdminConnectionConfig
from patchgate.schemas.policy import RolloutPolicy


class TaskDefinition(BaseModel):
    """One scheduled staged-approval task.

    Attributes:
        id: Stable task identifier. Tracking entries are keyed by it.
        name: Display name.
        description: Free-form description.
        enabled: Disabled tasks are never run.
        template: Built-in template the policy was derived from, if any.
        policy: Rollout policy of the task.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    name: str = Field(default="", max_length=256)
    description: str = Field(default="", max_length=1024)
    enabled: bool = True
    template: str | None = None
    policy: RolloutPolicy


class TaskFile(BaseModel):
    """Top-level task file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connection: AdminConnectionConfig
    tasks: list[TaskDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_task_ids(self) -> TaskFile:
        ids = [task.id for task in self.tasks]
        duplicates = sorted({task_id for task_id in ids if ids.count(task_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate task ids: {', '.join(duplicates)}")
        return self

    def get_task(self, task_id: str) -> TaskDefinition:
        """Look up a task by id.

        Raises:
            ConfigurationError: If no task has this id.
        """
        for task in self.tasks:
            if task.id == task_id:
                return task
        known = ", ".join(task.id for task in self.tasks) or "none"
        raise ConfigurationError(f"Unknown task '{task_id}' (known tasks: {known})")


__all__ = ["TaskDefinition", "TaskFile"]
