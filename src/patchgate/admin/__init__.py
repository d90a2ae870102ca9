"""Admin API access: client interface, HTTP client, and resilient gateway."""

from __future__ import annotations

from patchgate.admin.client import AdminClient, HttpAdminClient
from patchgate.admin.gateway import AdminGateway
from patchgate.admin.resilience import CircuitBreaker, CircuitState, RetryPolicy
from patchgate.admin.results import ApiResult

__all__ = [
    "AdminClient",
    "AdminGateway",
    "ApiResult",
    "CircuitBreaker",
    "CircuitState",
    "HttpAdminClient",
    "RetryPolicy",
]
