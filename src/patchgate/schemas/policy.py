"""Rollout policy schema.

A RolloutPolicy describes one staged approval workflow: which target groups
receive updates first, which receive them after promotion, which update
classifications participate, how long the cooling-off period lasts, and
which installation outcomes gate promotion.

The policy is read-only to the engine. It is supplied by the task file
(see patchgate.config) or built from a template (see patchgate.templates).

Example:
    >>> policy = RolloutPolicy(
    ...     test_group_ids=["pilot"],
    ...     production_group_ids=["all-workstations"],
    ... )
    >>> policy.cooling_off
    datetime.timedelta(days=7)
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CLASSIFICATIONS: tuple[str, ...] = ("Critical Updates", "Security Updates")
"""Classifications a new policy rolls out when none are given."""


class RolloutPolicy(BaseModel):
    """Staged approval configuration (test groups -> delay -> production).

    Attributes:
        test_group_ids: Target groups where updates are approved first.
        production_group_ids: Target groups approved after promotion.
        test_group_names: Display names for the test groups.
        production_group_names: Display names for the production groups.
        promotion_delay_days: Cooling-off period between test approval and
            promotion eligibility.
        update_classifications: Classifications that participate. An empty
            list matches every classification.
        require_successful_installations: Block promotion until enough test
            machines installed the update.
        minimum_successful_installations: Threshold for the rule above.
        abort_on_failures: Block promotion when test installs fail.
        max_allowed_failures: Failures tolerated before blocking.
        decline_superseded_updates: Decline a promoted update that a newer
            update has superseded.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    test_group_ids: list[str] = Field(
        default_factory=list,
        description="Target groups where updates are first approved",
    )
    production_group_ids: list[str] = Field(
        default_factory=list,
        description="Target groups where updates are promoted after testing",
    )
    test_group_names: list[str] = Field(default_factory=list)
    production_group_names: list[str] = Field(default_factory=list)
    promotion_delay_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days to wait in test before promotion",
    )
    update_classifications: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CLASSIFICATIONS),
        description="Update classifications to include (empty = all)",
    )
    require_successful_installations: bool = True
    minimum_successful_installations: int = Field(default=1, ge=0, le=1000)
    abort_on_failures: bool = True
    max_allowed_failures: int = Field(default=0, ge=0, le=100)
    decline_superseded_updates: bool = True

    @field_validator("test_group_ids", "production_group_ids", "update_classifications")
    @classmethod
    def _strip_blank_entries(cls, value: list[str]) -> list[str]:
        """Drop blank strings and duplicates while keeping order."""
        seen: list[str] = []
        for item in value:
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen

    @property
    def cooling_off(self) -> timedelta:
        """Cooling-off period as a timedelta."""
        return timedelta(days=self.promotion_delay_days)

    @property
    def matches_all_classifications(self) -> bool:
        """True when the classification list is a wildcard."""
        return not self.update_classifications

    def configuration_problems(self) -> list[str]:
        """List problems that make this policy unrunnable.

        Returns:
            Human-readable problems; empty when the policy can run.
        """
        problems: list[str] = []
        if not self.test_group_ids:
            problems.append("no test target groups configured")
        if not self.production_group_ids:
            problems.append("no production target groups configured")
        overlap = sorted(set(self.test_group_ids) & set(self.production_group_ids))
        if overlap:
            problems.append(
                f"groups listed as both test and production: {', '.join(overlap)}"
            )
        return problems


__all__ = ["DEFAULT_CLASSIFICATIONS", "RolloutPolicy"]
