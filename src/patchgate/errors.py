"""Exception hierarchy for patchgate.

All exceptions inherit from PatchgateError, the base exception class.

Exception Hierarchy:
    PatchgateError (base)
    ├── AdminApiError                # Admin API call failed
    │   ├── AdminTimeoutError        # Call timed out (retryable)
    │   ├── AdminUnavailableError    # Server unreachable or busy (retryable)
    │   ├── CircuitBreakerOpenError  # Circuit breaker is open, failing fast
    │   ├── RetryLimitExceededError  # Retries exhausted for a retryable error
    │   ├── UpdateNotFoundError      # Update id unknown to the server
    │   ├── AdminRequestError        # Server rejected the request
    │   └── AdminResponseError       # Server returned an unparseable payload
    ├── ConfigurationError           # Task file or rollout policy invalid
    ├── TrackingStoreError           # Tracking store unreadable/unwritable
    ├── InvalidTransitionError       # Illegal tracking status transition
    └── RunCancelledError            # Run stopped by a cancellation signal

Exit Codes:
    0 - Success
    1 - General error (PatchgateError)
    2 - Configuration error (ConfigurationError)
    3 - Persistence error (TrackingStoreError)
    5 - Admin API unavailable (AdminApiError and subclasses)
    9 - Invalid status transition (InvalidTransitionError)
    130 - Run cancelled (RunCancelledError)

Example:
    >>> from patchgate.errors import UpdateNotFoundError
    >>> raise UpdateNotFoundError("approve_update", "KB5034441")
    Traceback (most recent call last):
        ...
    UpdateNotFoundError: approve_update failed: update not found: KB5034441
"""

from __future__ import annotations


class PatchgateError(Exception):
    """Base exception for all patchgate errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1


class AdminApiError(PatchgateError):
    """Raised when a call to the patch-management Admin API fails.

    Attributes:
        operation: Name of the Admin API operation (e.g. "approve_update").
        reason: Description of the failure.
        retryable: Whether the failure is transient and worth retrying.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5
    retryable: bool = False

    def __init__(self, operation: str, reason: str) -> None:
        """Initialize AdminApiError.

        Args:
            operation: Name of the Admin API operation that failed.
            reason: Description of the failure.
        """
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class AdminTimeoutError(AdminApiError):
    """Raised when an Admin API call times out."""

    retryable = True


class AdminUnavailableError(AdminApiError):
    """Raised when the Admin API cannot be reached or reports it is busy."""

    retryable = True


class CircuitBreakerOpenError(AdminApiError):
    """Raised when the circuit breaker is open and calls fail fast.

    Attributes:
        endpoint: Admin endpoint guarded by the circuit.
        failure_count: Consecutive failures that opened the circuit.
        recovery_at: ISO timestamp when probing resumes, if known.
    """

    def __init__(
        self,
        endpoint: str,
        failure_count: int,
        recovery_at: str | None = None,
    ) -> None:
        """Initialize CircuitBreakerOpenError.

        Args:
            endpoint: Admin endpoint guarded by the circuit.
            failure_count: Consecutive failures that opened the circuit.
            recovery_at: ISO timestamp when probing resumes, if known.
        """
        self.endpoint = endpoint
        self.failure_count = failure_count
        self.recovery_at = recovery_at
        reason = f"circuit open for {endpoint} after {failure_count} failures"
        if recovery_at:
            reason += f", retry after {recovery_at}"
        super().__init__("circuit_breaker", reason)


class RetryLimitExceededError(AdminApiError):
    """Raised when a retryable Admin API error persists past all attempts.

    Attributes:
        attempts: Number of attempts made.
        last_error: The final underlying error.
    """

    def __init__(self, operation: str, attempts: int, last_error: AdminApiError) -> None:
        """Initialize RetryLimitExceededError.

        Args:
            operation: Name of the Admin API operation.
            attempts: Number of attempts made.
            last_error: The final underlying error.
        """
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(operation, f"gave up after {attempts} attempts: {last_error.reason}")


class UpdateNotFoundError(AdminApiError):
    """Raised when the server does not know the requested update."""

    def __init__(self, operation: str, update_id: str) -> None:
        """Initialize UpdateNotFoundError.

        Args:
            operation: Name of the Admin API operation.
            update_id: The update identifier that was not found.
        """
        self.update_id = update_id
        super().__init__(operation, f"update not found: {update_id}")


class AdminRequestError(AdminApiError):
    """Raised when the server rejects a request (non-retryable HTTP status).

    Attributes:
        status_code: HTTP status code returned by the server.
    """

    def __init__(self, operation: str, status_code: int, detail: str = "") -> None:
        """Initialize AdminRequestError.

        Args:
            operation: Name of the Admin API operation.
            status_code: HTTP status code returned by the server.
            detail: Optional response detail.
        """
        self.status_code = status_code
        reason = f"HTTP {status_code}"
        if detail:
            reason += f": {detail}"
        super().__init__(operation, reason)


class AdminResponseError(AdminApiError):
    """Raised when the server returns a payload that cannot be parsed."""


class ConfigurationError(PatchgateError):
    """Raised when a task file or rollout policy is invalid.

    Attributes:
        problems: Individual problems found, one per entry.
        exit_code: CLI exit code (2).
    """

    exit_code: int = 2

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Summary of the configuration failure.
            problems: Individual problems found.
        """
        self.problems = list(problems or [])
        if self.problems:
            message = f"{message}: {'; '.join(self.problems)}"
        super().__init__(message)


class TrackingStoreError(PatchgateError):
    """Raised when the tracking store cannot be read or written.

    Persistence errors are fatal to a run: continuing with in-memory state
    would let the next run read stale data and duplicate approvals.

    Attributes:
        operation: Store operation that failed ("load" or "save").
        path: Path of the store file.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, operation: str, path: str, reason: str) -> None:
        """Initialize TrackingStoreError.

        Args:
            operation: Store operation that failed.
            path: Path of the store file.
            reason: Description of the failure.
        """
        self.operation = operation
        self.path = path
        self.reason = reason
        super().__init__(f"Tracking store {operation} failed for {path}: {reason}")


class InvalidTransitionError(PatchgateError):
    """Raised when a tracking entry is asked to leave a terminal state.

    Attributes:
        update_id: Update of the offending entry.
        from_status: Current status.
        to_status: Requested status.
        exit_code: CLI exit code (9).
    """

    exit_code: int = 9

    def __init__(self, update_id: str, from_status: str, to_status: str) -> None:
        """Initialize InvalidTransitionError.

        Args:
            update_id: Update of the offending entry.
            from_status: Current status.
            to_status: Requested status.
        """
        self.update_id = update_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for update {update_id}: {from_status} -> {to_status}"
        )


class RunCancelledError(PatchgateError):
    """Raised when a run is stopped by an external cancellation signal."""

    exit_code: int = 130

    def __init__(self, message: str = "Run cancelled") -> None:
        super().__init__(message)


__all__ = [
    "AdminApiError",
    "AdminRequestError",
    "AdminResponseError",
    "AdminTimeoutError",
    "AdminUnavailableError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "InvalidTransitionError",
    "PatchgateError",
    "RetryLimitExceededError",
    "RunCancelledError",
    "TrackingStoreError",
    "UpdateNotFoundError",
]
