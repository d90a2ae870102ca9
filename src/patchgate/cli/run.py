"""patchgate run: execute one scheduled tick of a task.

This is the command the OS scheduler invokes. It prints the RunResult as
JSON on stdout and exits 0 on success, or with the exit code of the error
that ended the run.

Example:
    $ patchgate run security-rollout --config /etc/patchgate/tasks.yaml \\
        --data-dir /var/lib/patchgate
    {"Success": true, "NewApprovals": 2, "Promotions": 1, "Blocked": 0, ...}
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import structlog

from patchgate.cli.utils import ExitCode, exit_code_for_error_type, info, warn
from patchgate.config import load_task_file
from patchgate.errors import ConfigurationError
from patchgate.schemas.run import RunResult
from patchgate.staging.cancellation import CancellationToken
from patchgate.staging.coordinator import run_task

logger = structlog.get_logger(__name__)


@contextmanager
def _cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    """Route SIGINT and SIGTERM to token.cancel() for the duration."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ARG001
        logger.warning("cancellation_requested", signal=signal.Signals(signum).name)
        token.cancel()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, _handler)
        except ValueError:
            # Not on the main thread; signals cannot be routed.
            pass
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _format_result(result: RunResult, output: str) -> str:
    if output == "json":
        return result.to_json()

    lines = [
        f"Success:       {result.success}",
        f"New approvals: {result.new_approvals}",
        f"Promotions:    {result.promotions}",
        f"Blocked:       {result.blocked}",
        f"Failures:      {result.item_failures}",
    ]
    if result.cancelled:
        lines.append("Cancelled:     True")
    if result.error is not None:
        lines.append(f"Error:         {result.error.type}: {result.error.message}")
    return "\n".join(lines)


@click.command(
    name="run",
    help="Run the approval and promotion phases of a task once.",
    epilog="""
Exit Codes:
    0   - Success
    2   - Configuration error
    3   - Tracking store unreadable or unwritable
    130 - Cancelled
""",
)
@click.argument("task_id")
@click.option(
    "--config",
    "-c",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the YAML task file.",
    metavar="PATH",
)
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
    type=click.Choice(["json", "table"], case_sensitive=False),
    default="json",
    show_default=True,
    help="Output format.",
)
def run_command(task_id: str, config_path: Path, data_dir: Path, output: str) -> None:
    """Run a staged approval task.

    \b
    TASK_ID: Identifier of the task in the task file.
    """
    try:
        task_file = load_task_file(config_path)
        task = task_file.get_task(task_id)
    except ConfigurationError as e:
        click.echo(_format_result(RunResult.failed(e), output))
        sys.exit(e.exit_code)

    if not task.enabled:
        warn(f"Task '{task_id}' is disabled; nothing to do")
        click.echo(_format_result(RunResult.succeeded(), output))
        sys.exit(ExitCode.SUCCESS)

    if output == "table":
        info(f"Running task {task_id} against {task_file.connection.endpoint}")

    token = CancellationToken()
    with _cancel_on_signals(token):
        result = run_task(
            task.id,
            task.policy,
            data_dir,
            task_file.connection,
            cancel_token=token,
        )

    click.echo(_format_result(result, output))
    if result.success:
        sys.exit(ExitCode.SUCCESS)
    sys.exit(exit_code_for_error_type(result.error.type if result.error else None))


__all__ = ["run_command"]
