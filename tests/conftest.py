"""Shared test configuration for patchgate.

Provides an in-memory AdminClient, a controllable clock, and policy and
gateway fixtures. Unit tests never touch the network: the HTTP client is
tested through httpx.MockTransport.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import structlog
from fakes import T0, FakeAdminClient, FakeClock

from patchgate.admin.gateway import AdminGateway
from patchgate.admin.resilience import CircuitBreaker, RetryPolicy
from patchgate.schemas.admin import RetryConfig
from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.tracking import TrackingEntry
from patchgate.schemas.updates import UpdateSummary
from patchgate.telemetry.tracing import reset_tracer


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): Mark test as covering a specific requirement",
    )


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Generator[None, None, None]:
    """Undo logging configuration and cached tracers after each test.

    CLI tests configure structlog against CliRunner's temporary streams,
    which are closed once the invocation returns.
    """
    yield
    structlog.reset_defaults()
    reset_tracer()


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2024-01-09 03:00 UTC."""
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeAdminClient:
    """Empty in-memory Admin API."""
    return FakeAdminClient()


@pytest.fixture
def gateway(fake_client: FakeAdminClient) -> AdminGateway:
    """Gateway over fake_client with a single attempt per call."""
    return AdminGateway(
        fake_client,
        retry=RetryPolicy(RetryConfig(max_attempts=1)),
        circuit=CircuitBreaker("fake:8530"),
    )


@pytest.fixture
def policy() -> RolloutPolicy:
    """One test group, one production group, default gates."""
    return RolloutPolicy(test_group_ids=["pilot"], production_group_ids=["workstations"])


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def make_entry() -> Callable[..., TrackingEntry]:
    """Factory for tracking entries approved at T0 with a 7-day cooling-off."""

    def _make(
        update_id: str = "u-1",
        *,
        task_id: str = "security",
        approved_at: datetime = T0,
        days: int = 7,
        **updates: object,
    ) -> TrackingEntry:
        entry = TrackingEntry.open(
            UpdateSummary(id=update_id, title=f"Update {update_id}", kb_article="KB100"),
            task_id=task_id,
            approved_at=approved_at,
            cooling_off=timedelta(days=days),
        )
        return entry.model_copy(update=updates) if updates else entry

    return _make
