"""patchgate validate: check a task file before scheduling it."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from patchgate.cli.utils import ExitCode, error, success, warn
from patchgate.config import load_task_file
from patchgate.errors import ConfigurationError


@click.command(name="validate", help="Validate a task file and each task's policy.")
@click.option(
    "--config",
    "-c",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the YAML task file.",
    metavar="PATH",
)
def validate_command(config_path: Path) -> None:
    """Validate a task file.

    Schema errors and policies that cannot run (missing or overlapping
    target groups) both fail validation.
    """
    try:
        task_file = load_task_file(config_path)
    except ConfigurationError as e:
        error(str(e))
        sys.exit(e.exit_code)

    if not task_file.tasks:
        warn("Task file defines no tasks", path=str(config_path))

    failed = False
    for task in task_file.tasks:
        problems = task.policy.configuration_problems()
        if problems:
            failed = True
            error(f"Task '{task.id}' cannot run: {'; '.join(problems)}")
        else:
            state = "enabled" if task.enabled else "disabled"
            success(f"✓ {task.id} ({state})")

    if failed:
        sys.exit(ExitCode.CONFIGURATION_ERROR)
    success(f"Task file is valid: {config_path}")


__all__ = ["validate_command"]
