"""Staged (canary) approval engine.

Exports:
    RunCoordinator, run_task: Entry points of a scheduled run.
    ApprovalPhase, PromotionPhase: The two phases of a run.
    TrackingStore, RunHistoryStore: Persistent state.
    CancellationToken: Cooperative cancellation.
    evaluate_gates: Promotion gate evaluation.
"""

from __future__ import annotations

from patchgate.staging.approval import ApprovalOutcome, ApprovalPhase
from patchgate.staging.cancellation import CancellationToken
from patchgate.staging.coordinator import RunCoordinator, run_task
from patchgate.staging.gates import GateDecision, evaluate_gates
from patchgate.staging.history import RunHistoryStore
from patchgate.staging.promotion import PromotionOutcome, PromotionPhase
from patchgate.staging.store import TrackingStore

__all__ = [
    "ApprovalOutcome",
    "ApprovalPhase",
    "CancellationToken",
    "GateDecision",
    "PromotionOutcome",
    "PromotionPhase",
    "RunCoordinator",
    "RunHistoryStore",
    "TrackingStore",
    "evaluate_gates",
    "run_task",
]
