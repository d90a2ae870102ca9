"""Explicit success-or-error result of an Admin API call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from patchgate.errors import AdminApiError

T = TypeVar("T")


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Outcome of one gateway call.

    Exactly one of value (on success) or error (on failure) is meaningful.

    Example:
        >>> result = gateway.approve_update("u-1", "pilot")
        >>> if not result.ok:
        ...     log.warning("approval_failed", error=str(result.error))
    """

    value: T | None = None
    error: AdminApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> ApiResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: AdminApiError) -> ApiResult[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


__all__ = ["ApiResult"]
