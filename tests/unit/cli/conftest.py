"""CLI test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

TASK_FILE = """\
connection:
  server: wsus.example.com
  port: 8530
tasks:
  - id: security
    template: staged-security
    policy:
      test_group_ids: [pilot]
      production_group_ids: [workstations]
  - id: paused
    enabled: false
    policy:
      test_group_ids: [pilot]
      production_group_ids: [workstations]
  - id: broken
    policy:
      test_group_ids: [pilot]
"""


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()


@pytest.fixture
def task_file(tmp_path: Path) -> Path:
    """Task file with a runnable, a disabled and an unrunnable task."""
    path = tmp_path / "tasks.yaml"
    path.write_text(TASK_FILE, encoding="utf-8")
    return path
