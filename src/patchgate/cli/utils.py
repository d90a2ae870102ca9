"""CLI utility functions and exit codes.

Errors, warnings and progress go to stderr; command results (RunResult
JSON, tables) go to stdout so the scheduler can capture them.

Example:
    from patchgate.cli.utils import error_exit, ExitCode

    if not path.exists():
        error_exit("Task file not found", ExitCode.CONFIGURATION_ERROR, path=str(path))
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

from patchgate import errors

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes of patchgate commands.

    Values match the exit_code attribute of the corresponding
    PatchgateError subclasses.
    """

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    CONFIGURATION_ERROR = 2
    """Task file or policy invalid."""

    PERSISTENCE_ERROR = 3
    """Tracking or history file unreadable or unwritable."""

    ADMIN_API_ERROR = 5
    """Admin API unavailable or rejected a request."""

    INVALID_TRANSITION = 9
    """Illegal tracking status transition."""

    CANCELLED = 130
    """Run stopped by SIGINT or SIGTERM."""


def _error_exit_codes() -> dict[str, int]:
    codes: dict[str, int] = {}
    for name in errors.__all__:
        cls = getattr(errors, name)
        if isinstance(cls, type) and issubclass(cls, errors.PatchgateError):
            codes[name] = int(cls.exit_code)
    return codes


_EXIT_CODES_BY_ERROR_TYPE = _error_exit_codes()


def exit_code_for_error_type(error_type: str | None) -> int:
    """Map an error type name (as found in RunResult.error.type) to an exit code."""
    if error_type is None:
        return ExitCode.GENERAL_ERROR
    return _EXIT_CODES_BY_ERROR_TYPE.get(error_type, ExitCode.GENERAL_ERROR)


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Task file not found", path="/etc/patchgate/tasks.yaml")
        # Output: Error: Task file not found (path=/etc/patchgate/tasks.yaml)
    """
    click.echo(_with_context(f"Error: {message}", context), err=True)


def error_exit(
    message: str,
    exit_code: int = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(_with_context(f"Warning: {message}", context), err=True)


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr."""
    click.echo(message, err=True)


def _with_context(message: str, context: dict[str, str | int | bool | None]) -> str:
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    return f"{message} ({context_str})" if context_str else message


__all__ = [
    "ExitCode",
    "error",
    "error_exit",
    "exit_code_for_error_type",
    "info",
    "success",
    "warn",
]
