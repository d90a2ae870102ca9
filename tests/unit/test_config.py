"""Unit tests for task file loading and built-in templates."""

from __future__ import annotations

from pathlib import Path

import pytest

from patchgate.config import load_task_file, parse_task_file
from patchgate.errors import ConfigurationError
from patchgate.templates import STAGED_SECURITY, get_template, list_templates

TASK_FILE = """\
connection:
  server: wsus.example.com
  port: 8531
  use_ssl: true
  resilience:
    retry: {max_attempts: 5}
    circuit_breaker: {failure_threshold: 3}
tasks:
  - id: security-rollout
    name: Staged security rollout
    template: staged-security
    policy:
      test_group_ids: [pilot]
      production_group_ids: [workstations, servers]
      promotion_delay_days: 3
  - id: drivers
    enabled: false
    policy:
      test_group_ids: [lab]
      production_group_ids: [fleet]
      update_classifications: []
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "tasks.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadTaskFile:
    """Loading a valid task file."""

    @pytest.mark.requirement("CONFIG-001")
    def test_loads_connection_and_tasks(self, tmp_path: Path) -> None:
        task_file = load_task_file(_write(tmp_path, TASK_FILE))

        assert task_file.connection.base_url == "https://wsus.example.com:8531/api/v1"
        assert task_file.connection.resilience.retry.max_attempts == 5
        assert task_file.connection.resilience.circuit_breaker.failure_threshold == 3
        assert [task.id for task in task_file.tasks] == ["security-rollout", "drivers"]

    @pytest.mark.requirement("CONFIG-002")
    def test_template_defaults_merge_under_policy(self, tmp_path: Path) -> None:
        task = load_task_file(_write(tmp_path, TASK_FILE)).get_task("security-rollout")

        assert task.template == "staged-security"
        assert task.policy.promotion_delay_days == 3
        assert task.policy.update_classifications == ["Critical Updates", "Security Updates"]
        assert task.policy.production_group_ids == ["workstations", "servers"]

    @pytest.mark.requirement("CONFIG-001")
    def test_task_without_template(self, tmp_path: Path) -> None:
        task = load_task_file(_write(tmp_path, TASK_FILE)).get_task("drivers")

        assert task.enabled is False
        assert task.policy.matches_all_classifications


class TestLoadTaskFileErrors:
    """Every failure is a ConfigurationError."""

    @pytest.mark.requirement("CONFIG-003")
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_task_file(tmp_path / "missing.yaml")

    @pytest.mark.requirement("CONFIG-003")
    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_task_file(_write(tmp_path, "connection: [unclosed\n"))

    @pytest.mark.requirement("CONFIG-003")
    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            load_task_file(_write(tmp_path, "- just\n- a list\n"))

    @pytest.mark.requirement("CONFIG-003")
    def test_validation_errors_list_fields(self, tmp_path: Path) -> None:
        text = TASK_FILE.replace("promotion_delay_days: 3", "promotion_delay_days: 365")

        with pytest.raises(ConfigurationError) as exc_info:
            load_task_file(_write(tmp_path, text))

        assert any(
            "promotion_delay_days" in problem for problem in exc_info.value.problems
        )
        assert exc_info.value.exit_code == 2

    @pytest.mark.requirement("CONFIG-003")
    def test_unknown_template(self) -> None:
        data = {
            "connection": {"server": "wsus"},
            "tasks": [{"id": "t", "template": "nope", "policy": {}}],
        }
        with pytest.raises(ConfigurationError, match="Unknown template 'nope'"):
            parse_task_file(data)

    @pytest.mark.requirement("CONFIG-003")
    def test_duplicate_task_ids(self) -> None:
        data = {
            "connection": {"server": "wsus"},
            "tasks": [{"id": "t", "policy": {}}, {"id": "t", "policy": {}}],
        }
        with pytest.raises(ConfigurationError) as exc_info:
            parse_task_file(data)
        assert "duplicate task ids: t" in str(exc_info.value)

    @pytest.mark.requirement("CONFIG-004")
    def test_unknown_task(self, tmp_path: Path) -> None:
        task_file = load_task_file(_write(tmp_path, TASK_FILE))
        with pytest.raises(ConfigurationError, match="Unknown task 'nope'"):
            task_file.get_task("nope")


class TestTemplates:
    """Built-in templates."""

    @pytest.mark.requirement("TEMPLATE-001")
    def test_staged_security_defaults(self) -> None:
        template = get_template("staged-security")

        assert template is STAGED_SECURITY
        assert template.recommended is True
        assert template.policy_defaults["promotion_delay_days"] == 7
        assert template.policy_defaults["max_allowed_failures"] == 0

    @pytest.mark.requirement("TEMPLATE-001")
    def test_apply_prefers_task_keys(self) -> None:
        merged = STAGED_SECURITY.apply({"promotion_delay_days": 2})
        assert merged["promotion_delay_days"] == 2
        assert merged["decline_superseded_updates"] is True

    @pytest.mark.requirement("TEMPLATE-001")
    def test_list_templates(self) -> None:
        assert [t.id for t in list_templates()] == ["staged-security"]
