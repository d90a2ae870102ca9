"""Last-run history per task.

Layout:
    <data_dir>/task-runs.json    TaskRunHistory (task_id -> TaskRunRecord)
"""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from patchgate.errors import TrackingStoreError
from patchgate.schemas.run import TaskRunHistory, TaskRunRecord
from patchgate.staging.files import write_atomic

logger = structlog.get_logger(__name__)

HISTORY_FILE_NAME = "task-runs.json"


class RunHistoryStore:
    """Stores the outcome of the most recent run of each task."""

    def __init__(self, data_dir: Path | str) -> None:
        self._path = Path(data_dir) / HISTORY_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def get(self, task_id: str) -> TaskRunRecord:
        """Return the task's last run, or a never_run record."""
        return self._read().runs.get(task_id, TaskRunRecord(task_id=task_id))

    def record(self, run: TaskRunRecord) -> None:
        """Store run as the task's most recent run.

        Raises:
            TrackingStoreError: If the history file cannot be read or written.
        """
        history = self._read()
        history.runs[run.task_id] = run
        try:
            write_atomic(self._path, history.model_dump_json(indent=2))
        except OSError as e:
            raise TrackingStoreError("save", str(self._path), str(e)) from e
        logger.debug(
            "run_history_recorded",
            task_id=run.task_id,
            status=run.last_run_status.value,
        )

    def _read(self) -> TaskRunHistory:
        if not self._path.exists():
            return TaskRunHistory()
        try:
            return TaskRunHistory.model_validate_json(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise TrackingStoreError("load", str(self._path), str(e)) from e
        except ValidationError as e:
            raise TrackingStoreError(
                "load", str(self._path), f"invalid history file: {e.error_count()} error(s)"
            ) from e


__all__ = ["HISTORY_FILE_NAME", "RunHistoryStore"]
