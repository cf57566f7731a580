"""Push-then-pull sync orchestration."""

from .orchestrator import SyncOrchestrator, SyncPhase, SyncResult
from .reconcile import PullAction, PullDecision, decide_pull_action

__all__ = [
    "SyncOrchestrator",
    "SyncPhase",
    "SyncResult",
    "PullAction",
    "PullDecision",
    "decide_pull_action",
]
