"""patchgate: staged (canary) approval engine for a patch-management server.

Updates are approved for test groups first, watched over a cooling-off
period, and promoted to production groups only when their test
installations pass the policy's gates.

Example:
    >>> from patchgate import load_task_file, run_task
    >>> task_file = load_task_file("tasks.yaml")
    >>> task = task_file.get_task("security-rollout")
    >>> result = run_task(task.id, task.policy, "/var/lib/patchgate", task_file.connection)
"""

from __future__ import annotations

from patchgate.config import load_task_file
from patchgate.errors import PatchgateError
from patchgate.schemas import RolloutPolicy, RunResult, TrackingEntry, TrackingStatus
from patchgate.staging import CancellationToken, RunCoordinator, run_task

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "PatchgateError",
    "RolloutPolicy",
    "RunCoordinator",
    "RunResult",
    "TrackingEntry",
    "TrackingStatus",
    "__version__",
    "load_task_file",
    "run_task",
]
