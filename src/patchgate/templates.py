"""Built-in task templates.

A template supplies policy defaults for a task. In a task file, keys under
``policy`` override the template's defaults:

    tasks:
      - id: security-rollout
        template: staged-security
        policy:
          test_group_ids: [pilot]
          production_group_ids: [all-workstations]
          promotion_delay_days: 3     # overrides the template's 7
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from patchgate.errors import ConfigurationError


class TaskTemplate(BaseModel):
    """Named set of policy defaults.

    Attributes:
        id: Template identifier referenced by task files.
        name: Display name.
        description: What the template is for.
        recommended: Shown first by ``patchgate templates``.
        sort_order: Display order.
        policy_defaults: RolloutPolicy fields applied before the task's own.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    recommended: bool = False
    sort_order: int = 0
    policy_defaults: dict[str, Any] = Field(default_factory=dict)

    def apply(self, policy: dict[str, Any]) -> dict[str, Any]:
        """Merge task policy keys over the template defaults."""
        return {**self.policy_defaults, **policy}


STAGED_SECURITY = TaskTemplate(
    id="staged-security",
    name="Staged security approval",
    description=(
        "Approve critical and security updates for test groups, wait 7 days, "
        "then promote to production if at least one test install succeeded "
        "and none failed. Declines superseded updates after promotion."
    ),
    recommended=True,
    sort_order=1,
    policy_defaults={
        "promotion_delay_days": 7,
        "update_classifications": ["Critical Updates", "Security Updates"],
        "require_successful_installations": True,
        "minimum_successful_installations": 1,
        "abort_on_failures": True,
        "max_allowed_failures": 0,
        "decline_superseded_updates": True,
    },
)

BUILTIN_TEMPLATES: dict[str, TaskTemplate] = {STAGED_SECURITY.id: STAGED_SECURITY}


def list_templates() -> list[TaskTemplate]:
    """Built-in templates in display order."""
    return sorted(BUILTIN_TEMPLATES.values(), key=lambda t: (t.sort_order, t.id))


def get_template(template_id: str) -> TaskTemplate:
    """Look up a built-in template.

    Raises:
        ConfigurationError: If the template does not exist.
    """
    try:
        return BUILTIN_TEMPLATES[template_id]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_TEMPLATES))
        raise ConfigurationError(
            f"Unknown template '{template_id}' (available: {known})"
        ) from None


__all__ = [
    "BUILTIN_TEMPLATES",
    "STAGED_SECURITY",
    "TaskTemplate",
    "get_template",
    "list_templates",
]
