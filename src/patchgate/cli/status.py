"""patchgate status: show a task's last run and tracking entries."""

from __future__ import annotations

import json
from pathlib import Path

import click

from patchgate.cli.utils import error_exit
from patchgate.errors import TrackingStoreError
from patchgate.schemas.run import TaskRunRecord
from patchgate.schemas.tracking import TrackingEntry
from patchgate.staging.history import RunHistoryStore
from patchgate.staging.store import TrackingStore


def _format_table(record: TaskRunRecord, entries: list[TrackingEntry]) -> str:
    last_run = record.last_run_at.isoformat() if record.last_run_at else "-"
    lines = [
        f"Task:         {record.task_id}",
        f"Last run:     {last_run}",
        f"Last status:  {record.last_run_status.value}",
        f"Last message: {record.last_run_message or '-'}",
        "",
        f"Tracked updates: {len(entries)}",
    ]
    if entries:
        lines.append("")
        lines.append(f"  {'UPDATE':<38} {'KB':<12} {'STATUS':<11} {'OK':>4} {'FAIL':>4}  ELIGIBLE")
        for entry in entries:
            lines.append(
                f"  {entry.update_id:<38} {entry.reference_code or '-':<12} "
                f"{entry.status.value:<11} {entry.successful_installations:>4} "
                f"{entry.failed_installations:>4}  "
                f"{entry.eligible_for_promotion_at:%Y-%m-%d %H:%M}"
            )
    return "\n".join(lines)


@click.command(name="status", help="Show the last run and tracked updates of a task.")
@click.argument("task_id")
@click.option(
    "--data-dir",
    "-d",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of the tracking and run history files.",
    metavar="DIR",
)
@click.option(
    "--output",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format.",
)
def status_command(task_id: str, data_dir: Path, output: str) -> None:
    """Show a task's status.

    \b
    TASK_ID: Identifier of the task.
    """
    try:
        record = RunHistoryStore(data_dir).get(task_id)
        entries = TrackingStore(data_dir).entries_for_task(task_id)
    except TrackingStoreError as e:
        error_exit(str(e), e.exit_code, task_id=task_id)

    if output == "json":
        click.echo(
            json.dumps(
                {
                    "task_id": task_id,
                    "last_run": record.model_dump(mode="json"),
                    "entries": [entry.model_dump(mode="json") for entry in entries],
                },
                indent=2,
            )
        )
    else:
        click.echo(_format_table(record, entries))


__all__ = ["status_command"]
