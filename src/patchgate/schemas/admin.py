"""Admin API connection and resilience configuration.

Examples:
    >>> config = AdminConnectionConfig(server="wsus.example.com", port=8531, use_ssl=True)
    >>> config.base_url
    'https://wsus.example.com:8531/api/v1'
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RetryConfig(BaseModel):
    """Retry policy configuration for transient Admin API failures.

    Each wait is backoff_multiplier times the previous one, capped at max_delay_ms.

    Examples:
        >>> RetryConfig(max_attempts=5, initial_delay_ms=500).initial_delay_ms
        500
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of attempts, including the first",
    )
    initial_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Wait before the second attempt, in milliseconds",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=5.0,
        description="Factor applied to the wait after each failed attempt",
    )
    max_delay_ms: int = Field(
        default=30000,
        ge=0,
        description="Upper bound on any single wait, in milliseconds",
    )
    jitter: bool = Field(
        default=True,
        description="Spread each wait by up to 25% either way",
    )


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration for Admin API availability.

    Only retryable Admin API failures count
    toward failure_threshold. See admin.resilience.CircuitBreaker.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before opening the circuit",
    )
    recovery_timeout_ms: int = Field(
        default=60000,
        ge=0,
        description="Quiet period after the last failure before a probe is allowed",
    )
    half_open_requests: int = Field(
        default=1,
        ge=1,
        description="Calls let through while probing a recovering server",
    )


class ResilienceConfig(BaseModel):
    """Retry and circuit breaker settings combined."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)


class AdminConnectionConfig(BaseModel):
    """Connection parameters for the patch-management Admin API.

    Attributes:
        server: Host name of the administration server.
        port: TCP port (8530 plain, 8531 TLS by convention).
        use_ssl: Connect over HTTPS.
        timeout_seconds: Per-request timeout.
        verify_tls: Verify the server certificate when use_ssl is set.
        resilience: Retry and circuit breaker settings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    server: str = Field(..., min_length=1)
    port: int = Field(default=8530, ge=1, le=65535)
    use_ssl: bool = False
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    verify_tls: bool = True
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    @property
    def base_url(self) -> str:
        """Base URL of the versioned Admin API."""
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.server}:{self.port}/api/v1"

    @property
    def endpoint(self) -> str:
        """host:port label used in logs and metrics."""
        return f"{self.server}:{self.port}"


__all__ = [
    "AdminConnectionConfig",
    "CircuitBreakerConfig",
    "ResilienceConfig",
    "RetryConfig",
]
