"""Unit tests for RunHistoryStore."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import T0

from patchgate.errors import TrackingStoreError
from patchgate.schemas.run import RunResult, TaskRunRecord, TaskRunStatus
from patchgate.staging.history import RunHistoryStore


@pytest.mark.requirement("HIST-001")
def test_unknown_task_never_run(data_dir: Path) -> None:
    record = RunHistoryStore(data_dir).get("security")

    assert record.last_run_status == TaskRunStatus.NEVER_RUN
    assert record.last_run_at is None


@pytest.mark.requirement("HIST-001")
def test_record_replaces_previous_run(data_dir: Path) -> None:
    history = RunHistoryStore(data_dir)
    history.record(TaskRunRecord.from_result("security", RunResult.succeeded(), T0))
    history.record(
        TaskRunRecord.from_result("security", RunResult.succeeded(new_approvals=2), T0)
    )
    history.record(TaskRunRecord.from_result("drivers", RunResult.succeeded(), T0))

    reloaded = RunHistoryStore(data_dir)
    assert reloaded.get("security").last_run_message == (
        "2 new approvals, 0 promotions, 0 blocked"
    )
    assert reloaded.get("drivers").last_run_status == TaskRunStatus.SUCCESS


@pytest.mark.requirement("HIST-002")
def test_corrupt_history(data_dir: Path) -> None:
    history = RunHistoryStore(data_dir)
    history.path.write_text('{"runs": {"x": {"last_run_status": "bogus"}}}', encoding="utf-8")

    with pytest.raises(TrackingStoreError, match="invalid history file"):
        history.get("x")
