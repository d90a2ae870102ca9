"""Promotion gates.

Gates are evaluated in a fixed order and the first failing gate decides:

1. Successful installations: with require_successful_installations set,
   fewer than minimum_successful_installations successes blocks.
2. Failures: with abort_on_failures set, more than max_allowed_failures
   failures blocks.

A test group with too few installs and too many failures is therefore
reported as "Insufficient successful installations".
"""

from __future__ import annotations

from dataclasses import dataclass

from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.updates import InstallationOutcome


@dataclass(frozen=True)
class GateDecision:
    """Result of evaluating the gates for one entry.

    Attributes:
        promote: True when every gate passed.
        reason: Failing gate's message when promote is False.
    """

    promote: bool
    reason: str | None = None


def evaluate_gates(policy: RolloutPolicy, outcome: InstallationOutcome) -> GateDecision:
    """Decide whether an update may leave the test groups.

    Args:
        policy: The task's rollout policy.
        outcome: Fresh installation counts from the test groups.

    Returns:
        GateDecision to promote, or to block with a reason.

    Examples:
        >>> evaluate_gates(RolloutPolicy(..., minimum_successful_installations=3),
        ...                InstallationOutcome(installed=1, failed=5)).reason
        'Insufficient successful installations: 1/3'
    """
    if (
        policy.require_successful_installations
        and outcome.installed < policy.minimum_successful_installations
    ):
        return GateDecision(
            promote=False,
            reason=(
                "Insufficient successful installations: "
                f"{outcome.installed}/{policy.minimum_successful_installations}"
            ),
        )

    if policy.abort_on_failures and outcome.failed > policy.max_allowed_failures:
        return GateDecision(
            promote=False,
            reason=f"Too many failures: {outcome.failed} (max: {policy.max_allowed_failures})",
        )

    return GateDecision(promote=True)


__all__ = ["GateDecision", "evaluate_gates"]
