"""Unit tests for RunCoordinator and run_task."""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fakes import FakeAdminClient, FakeClock

from patchgate.admin.gateway import AdminGateway
from patchgate.errors import TrackingStoreError
from patchgate.schemas.admin import AdminConnectionConfig
from patchgate.schemas.policy import RolloutPolicy
from patchgate.schemas.run import TaskRunStatus
from patchgate.schemas.tracking import TrackingEntry, TrackingStatus
from patchgate.schemas.updates import InstallationOutcome
from patchgate.staging.cancellation import CancellationToken
from patchgate.staging.coordinator import RunCoordinator, run_task
from patchgate.staging.history import RunHistoryStore
from patchgate.staging.store import TrackingStore


@pytest.fixture
def store(data_dir: Path, clock: FakeClock) -> TrackingStore:
    return TrackingStore(data_dir, clock=clock)


@pytest.fixture
def history(data_dir: Path) -> RunHistoryStore:
    return RunHistoryStore(data_dir)


@pytest.fixture
def make_coordinator(
    store: TrackingStore,
    gateway: AdminGateway,
    clock: FakeClock,
    history: RunHistoryStore,
) -> Callable[[RolloutPolicy], RunCoordinator]:
    def _make(policy: RolloutPolicy) -> RunCoordinator:
        return RunCoordinator("security", policy, store, gateway, clock=clock, history=history)

    return _make


class TestRun:
    """End-to-end runs over the in-memory Admin API."""

    @pytest.mark.requirement("RUN-001")
    def test_approval_then_promotion_in_one_run(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        store: TrackingStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
        make_entry: Callable[..., TrackingEntry],
        clock: FakeClock,
    ) -> None:
        store.save([make_entry("old", approved_at=clock.now - timedelta(days=8))])
        fake_client.outcomes["old"] = InstallationOutcome(installed=4)
        fake_client.add_update("new")

        result = make_coordinator(policy).run()

        assert result.success
        assert (result.new_approvals, result.promotions, result.blocked) == (1, 1, 0)
        assert result.started_at == clock.now
        statuses = {e.update_id: e.status for e in store.load()}
        assert statuses == {"old": TrackingStatus.PROMOTED, "new": TrackingStatus.IN_TESTING}

    @pytest.mark.requirement("RUN-001")
    def test_second_run_changes_nothing(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        store: TrackingStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.add_update("u-1")
        coordinator = make_coordinator(policy)

        coordinator.run()
        entries = store.load()
        result = coordinator.run()

        assert result.new_approvals == 0
        assert store.load() == entries
        assert len(fake_client.approvals) == 1

    @pytest.mark.requirement("RUN-002")
    def test_invalid_policy_fails_without_api_calls(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        fake_client: FakeAdminClient,
        store: TrackingStore,
    ) -> None:
        policy = RolloutPolicy(test_group_ids=["pilot"], production_group_ids=[])

        result = make_coordinator(policy).run()

        assert not result.success
        assert result.error is not None
        assert result.error.type == "ConfigurationError"
        assert "no production target groups configured" in result.error.message
        assert fake_client.calls == []
        assert not store.path.exists()

    @pytest.mark.requirement("RUN-003")
    def test_store_failure_fails_run(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        store: TrackingStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.add_update("u-1")
        error = TrackingStoreError("save", str(store.path), "disk full")

        with patch.object(store, "save", side_effect=error):
            result = make_coordinator(policy).run()

        assert not result.success
        assert result.error is not None
        assert result.error.type == "TrackingStoreError"
        assert "disk full" in result.error.message

    @pytest.mark.requirement("RUN-004")
    def test_failed_query_is_item_failure_not_run_failure(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.fail("list_unapproved_updates")

        result = make_coordinator(policy).run()

        assert result.success
        assert result.item_failures == 1

    @pytest.mark.requirement("RUN-004")
    def test_phase_crash_is_contained(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.list_unapproved_updates = MagicMock(  # type: ignore[method-assign]
            side_effect=RuntimeError("bug")
        )

        result = make_coordinator(policy).run()

        assert result.success
        assert result.item_failures == 1

    @pytest.mark.requirement("RUN-005")
    def test_cancellation_keeps_completed_work(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        store: TrackingStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.add_update("u-1")
        fake_client.add_update("u-2")
        token = CancellationToken()
        original = fake_client.approve_update

        def approve_then_cancel(update_id: str, group_id: str) -> None:
            original(update_id, group_id)
            token.cancel()

        fake_client.approve_update = approve_then_cancel  # type: ignore[method-assign]

        result = make_coordinator(policy).run(cancel_token=token)

        assert not result.success
        assert result.cancelled
        assert result.new_approvals == 1
        assert [e.update_id for e in store.load()] == ["u-1"]
        assert fake_client.calls_to("get_installation_outcome") == []


class TestRunHistory:
    """Run history bookkeeping."""

    @pytest.mark.requirement("RUN-006")
    def test_success_recorded(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        history: RunHistoryStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
        clock: FakeClock,
    ) -> None:
        fake_client.add_update("u-1")

        make_coordinator(policy).run()

        record = history.get("security")
        assert record.last_run_status == TaskRunStatus.SUCCESS
        assert record.last_run_at == clock.now
        assert record.last_run_message == "1 new approvals, 0 promotions, 0 blocked"

    @pytest.mark.requirement("RUN-006")
    def test_item_failures_recorded_as_warning(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        history: RunHistoryStore,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.fail("list_unapproved_updates")

        make_coordinator(policy).run()

        assert history.get("security").last_run_status == TaskRunStatus.WARNING

    @pytest.mark.requirement("RUN-006")
    def test_failure_recorded(
        self,
        make_coordinator: Callable[[RolloutPolicy], RunCoordinator],
        history: RunHistoryStore,
    ) -> None:
        make_coordinator(RolloutPolicy()).run()

        assert history.get("security").last_run_status == TaskRunStatus.FAILED

    @pytest.mark.requirement("RUN-007")
    def test_metrics_recorded(
        self,
        store: TrackingStore,
        gateway: AdminGateway,
        clock: FakeClock,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
    ) -> None:
        fake_client.add_update("u-1")
        metrics = MagicMock()

        RunCoordinator("security", policy, store, gateway, clock=clock, metrics=metrics).run()

        metrics.record_run.assert_called_once()
        kwargs = metrics.record_run.call_args.kwargs
        assert kwargs["success"] is True
        assert kwargs["new_approvals"] == 1


class TestRunTask:
    """run_task wiring."""

    @pytest.mark.requirement("RUN-008")
    def test_injected_client_is_not_closed(
        self,
        data_dir: Path,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
        clock: FakeClock,
    ) -> None:
        fake_client.add_update("u-1")

        result = run_task(
            "security",
            policy,
            data_dir,
            AdminConnectionConfig(server="wsus"),
            client=fake_client,
            clock=clock,
        )

        assert result.success
        assert result.new_approvals == 1
        assert not fake_client.closed
        assert TrackingStore(data_dir).load()[0].update_id == "u-1"
        assert RunHistoryStore(data_dir).get("security").last_run_status == (
            TaskRunStatus.SUCCESS
        )

    @pytest.mark.requirement("RUN-008")
    def test_owned_client_is_closed(
        self,
        data_dir: Path,
        fake_client: FakeAdminClient,
        policy: RolloutPolicy,
        clock: FakeClock,
    ) -> None:
        with patch(
            "patchgate.staging.coordinator.HttpAdminClient", return_value=fake_client
        ) as factory:
            result = run_task(
                "security", policy, data_dir, AdminConnectionConfig(server="wsus"), clock=clock
            )

        assert result.success
        factory.assert_called_once()
        assert fake_client.closed
