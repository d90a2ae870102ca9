"""Task file loader.

Reads a YAML task file, applies template defaults to each task's policy,
and validates the result as a TaskFile. Every failure surfaces as a
ConfigurationError listing what is wrong, with field paths.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from patchgate.errors import ConfigurationError
from patchgate.schemas.tasks import TaskFile
from patchgate.templates import get_template

logger = structlog.get_logger(__name__)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Task file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read task file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {path.name}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Task file {path.name} must contain a mapping at the top level")
    return data


def _apply_templates(data: dict[str, Any]) -> dict[str, Any]:
    tasks = data.get("tasks")
    if not isinstance(tasks, list):
        return data

    merged: list[Any] = []
    for task in tasks:
        if isinstance(task, dict) and task.get("template"):
            template = get_template(str(task["template"]))
            policy = task.get("policy") or {}
            if isinstance(policy, dict):
                task = {**task, "policy": template.apply(policy)}
        merged.append(task)
    return {**data, "tasks": merged}


def _format_errors(error: ValidationError) -> list[str]:
    problems = []
    for err in error.errors():
        field_path = ".".join(str(loc) for loc in err.get("loc", ()))
        message = err.get("msg", "Invalid value")
        problems.append(f"{field_path}: {message}" if field_path else message)
    return problems


def parse_task_file(data: dict[str, Any], source: str = "<task file>") -> TaskFile:
    """Validate already-parsed task file data.

    Args:
        data: Parsed YAML mapping.
        source: Name used in error messages.

    Raises:
        ConfigurationError: If a template is unknown or validation fails.
    """
    try:
        return TaskFile.model_validate(_apply_templates(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid task file {source}", _format_errors(e)) from e


def load_task_file(path: Path | str) -> TaskFile:
    """Load and validate a YAML task file.

    Args:
        path: Path to the task file.

    Returns:
        Validated TaskFile.

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or fails
            validation.

    Example:
        >>> task_file = load_task_file("tasks.yaml")
        >>> task_file.get_task("security-rollout").policy.promotion_delay_days
        7
    """
    path = Path(path)
    task_file = parse_task_file(_load_yaml(path), source=path.name)
    logger.debug("task_file_loaded", path=str(path), tasks=len(task_file.tasks))
    return task_file


__all__ = ["load_task_file", "parse_task_file"]
