"""Typed records parsed from Admin API responses.

Payloads are parsed into these models once, at the client boundary, so
the approval and promotion phases never handle untyped mappings.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UpdateSummary(BaseModel):
    """An update returned by the unapproved-updates query.

    Attributes:
        id: Opaque update identifier assigned by the server.
        title: Update title for display.
        reference_code: Knowledge-base article number, when known.
        classification: Update classification (e.g. "Security Updates").

    Examples:
        >>> UpdateSummary(id="u-1", title="2024-01 Cumulative Update",
        ...               reference_code="KB5034441",
        ...               classification="Security Updates").reference_code
        'KB5034441'
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str = ""
    reference_code: str | None = Field(default=None, alias="kb_article")
    classification: str = ""


class InstallationOutcome(BaseModel):
    """Installation counts for one update across a set of target groups.

    Attributes:
        installed: Machines that installed the update successfully.
        failed: Machines where installation failed.
        pending: Machines that still need the update.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    installed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        """Total machines reporting for the update."""
        return self.installed + self.failed + self.pending


__all__ = ["InstallationOutcome", "UpdateSummary"]
