"""
Pull reconciliation rules.

Compares a pulled remote record against its local copy to decide what the
pull phase does with it. Local un-pushed changes always win; there is no
automatic merge.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..models.sync_meta import SyncStatus


class PullAction(Enum):
    """What to do with one pulled record."""

    # No local copy - insert as Synced
    INSERT = auto()

    # Local copy is Synced and older - overwrite it
    UPDATE = auto()

    # Local copy has un-pushed changes - keep it, count a conflict
    CONFLICT = auto()

    # Same timestamp, or the remote copy is stale
    NO_CHANGE = auto()


@dataclass
class PullDecision:
    """
    Result of comparing a remote record against local state.

    Attributes:
        action: The action to take
        remote: The pulled record
        local: The matching local record (None for new records)
    """
    action: PullAction
    remote: object
    local: Optional[object] = None

    @property
    def applies_remote(self) -> bool:
        """Check if the remote copy will be written locally."""
        return self.action in (PullAction.INSERT, PullAction.UPDATE)

    def __repr__(self) -> str:
        return (
            f"PullDecision({self.remote.kind.value} {self.remote.sync.local_id}, "
            f"action={self.action.name})"
        )


def decide_pull_action(local, remote) -> PullDecision:
    """
    Decide how a pulled record is applied.

    Rules:
    - No local copy → INSERT
    - Equal modified_at → NO_CHANGE
    - Local status is not Synced and timestamps differ → CONFLICT
    - Local is Synced and remote is newer → UPDATE
    - Local is Synced and newer than remote → NO_CHANGE

    Args:
        local: Local copy matched by local or remote id, or None
        remote: Pulled record

    Returns:
        PullDecision describing the action
    """
    if local is None:
        return PullDecision(action=PullAction.INSERT, remote=remote)

    local_time = local.sync.modified_at
    remote_time = remote.sync.modified_at

    if local_time == remote_time:
        return PullDecision(action=PullAction.NO_CHANGE, remote=remote, local=local)

    if local.sync.sync_status != SyncStatus.SYNCED:
        return PullDecision(action=PullAction.CONFLICT, remote=remote, local=local)

    if local_time < remote_time:
        return PullDecision(action=PullAction.UPDATE, remote=remote, local=local)

    return PullDecision(action=PullAction.NO_CHANGE, remote=remote, local=local)
