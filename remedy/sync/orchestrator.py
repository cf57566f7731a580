"""
Push-then-pull sync orchestrator.

Drives one full sync cycle against the remote service. Per-record state
updates are independent, so partial progress survives later failures, and
local data is never deleted or reverted when a cycle fails.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from config.settings import SyncConfig

from ..storage.change_tracker import ChangeTracker
from ..transport.client import SyncClient
from ..transport.models import SyncBatch
from ..transport.results import Conflict, TransportResult
from .reconcile import PullAction, decide_pull_action

logger = logging.getLogger(__name__)

CONFLICT_REASON = "version conflict"


class SyncPhase(Enum):
    """Phases of a sync cycle."""
    IDLE = "idle"
    CHECK_HEALTH = "check_health"
    UNREACHABLE = "unreachable"
    PUSH = "push"
    PULL = "pull"
    DONE = "done"


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""
    success: bool = False
    message: str = ""
    pushed: int = 0
    push_failed: int = 0
    push_conflicts: int = 0
    pulled: int = 0
    pull_failed: int = 0
    conflicts: int = 0
    purged: int = 0
    offline: bool = False
    phase: SyncPhase = SyncPhase.IDLE
    errors: list[str] = field(default_factory=list)

    @property
    def local_data_preserved(self) -> bool:
        """A cycle never deletes or reverts un-synced local data."""
        return True

    def summary(self) -> str:
        return (
            f"Pushed {self.pushed}, pulled {self.pulled} ({self.pull_failed} failed), "
            f"push failed {self.push_failed} ({self.push_conflicts} conflicts), "
            f"pull conflicts {self.conflicts}"
        )

    def __str__(self) -> str:
        return f"{self.message} ({self.summary()})" if self.message else self.summary()


class SyncOrchestrator:
    """
    Orchestrates synchronization between the local store and the remote.

    Core principles:
    - Exactly one cycle runs at a time
    - Push completes, retries included, before pull begins
    - Conflicts are counted and flagged, never silently resolved
    - Unexpected errors end up in the result, not in the caller

    Usage:
        orchestrator = SyncOrchestrator(
            tracker=ChangeTracker(store),
            config=settings.sync,
        )

        result = orchestrator.synchronize()
        print(result)
    """

    def __init__(
        self,
        tracker: ChangeTracker,
        config: SyncConfig,
        client: Optional[SyncClient] = None,
    ):
        """
        Initialize sync orchestrator.

        Args:
            tracker: Change tracker over the local store
            config: Sync configuration; no server URL means offline-only
            client: Transport client; built from config when omitted
        """
        self.tracker = tracker
        self.config = config
        self.client = client

        if self.client is None and config.sync_enabled:
            self.client = SyncClient(
                base_url=config.server_url,
                max_retries=config.max_retries,
                retry_delay=config.retry_delay_seconds,
                timeout=config.timeout_seconds,
            )

        self.phase = SyncPhase.IDLE
        self._lock = threading.Lock()

    @property
    def sync_enabled(self) -> bool:
        return self.config.sync_enabled and self.client is not None

    def synchronize(self) -> SyncResult:
        """
        Execute a full push-then-pull cycle.

        Steps:
        1. Check the remote is reachable, abort if not
        2. Push all PendingSync records in one batch
        3. Pull remote changes since the checkpoint and apply them
        4. Persist the new checkpoint and purge synced deletions

        Returns:
            SyncResult with counts of all operations
        """
        if not self.sync_enabled:
            logger.info("Sync disabled - running in offline-only mode")
            return SyncResult(
                success=True,
                offline=True,
                message="Sync disabled - running in offline-only mode",
            )

        with self._lock:
            result = SyncResult()
            try:
                self._run_cycle(result)
            except Exception as e:
                logger.error(f"Unexpected sync error in {self.phase.value} phase: {e}", exc_info=True)
                result.success = False
                result.message = f"Sync error: {e}"
                result.errors.append(str(e))
            finally:
                result.phase = self.phase
                self.phase = SyncPhase.IDLE

            logger.info(str(result))
            return result

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug(f"Sync phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def _run_cycle(self, result: SyncResult) -> None:
        self._enter(SyncPhase.CHECK_HEALTH)
        health = self.client.health_check()
        if not health.ok:
            self._enter(SyncPhase.UNREACHABLE)
            logger.warning(f"Remote unreachable: {health.reason}")
            result.message = "Server unavailable - changes will sync when server is back online"
            result.errors.append(health.reason)
            return

        self._enter(SyncPhase.PUSH)
        push_ok = self._push_changes(result)

        self._enter(SyncPhase.PULL)
        checkpoint = self.tracker.get_checkpoint()
        pull_outcome = self.client.pull(checkpoint)
        if not pull_outcome.ok:
            logger.error(f"Pull failed: {pull_outcome.reason}")
            result.message = f"Pull failed: {pull_outcome.reason}"
            result.errors.append(pull_outcome.reason)
            return

        newest = self._apply_pulled(pull_outcome.data, result)
        if newest is not None and (checkpoint is None or newest > checkpoint):
            self.tracker.set_checkpoint(newest)

        result.purged = self.tracker.purge_synced_deletions()
        self._enter(SyncPhase.DONE)

        result.success = push_ok and result.pull_failed == 0
        if result.success:
            result.message = "Sync completed"
        elif not push_ok:
            result.message = "Sync completed with push errors"
        else:
            result.message = (
                f"Sync completed with pull errors - {result.pull_failed} "
                f"remote items will be pulled again"
            )

    def _push_changes(self, result: SyncResult) -> bool:
        """
        Push PendingSync records and settle each one.

        SyncFailed records are not retried here; they wait for
        reset_failed() or a fresh local edit.

        Returns:
            False if the batch call itself failed
        """
        pending = self.tracker.list_pending(include_failed=False)
        if not pending:
            logger.info("Nothing to push")
            return True

        batch = SyncBatch.from_records(pending)
        outcome = self.client.push_batch(batch)

        if not outcome.ok:
            self._fail_batch(pending, outcome, result)
            return False

        by_key = {record.key: record for record in pending}

        for kind, item in outcome.data.results():
            record = by_key.pop((kind, item.client_id), None)
            if record is None:
                logger.warning(f"Remote returned a result for unknown {kind.value} {item.client_id}")
                continue

            try:
                if item.success:
                    self.tracker.mark_synced(record, item.server_id)
                    result.pushed += 1
                elif item.is_conflict:
                    self.tracker.mark_failed(record, CONFLICT_REASON, conflict=True)
                    result.push_failed += 1
                    result.push_conflicts += 1
                else:
                    self.tracker.mark_failed(record, item.error or "Unknown error")
                    result.push_failed += 1
            except Exception as e:
                logger.error(f"Error settling {kind.value} {item.client_id}: {e}", exc_info=True)
                result.errors.append(f"{kind.value} {item.client_id}: {e}")

        for kind, local_id in by_key:
            logger.warning(f"No push result for {kind.value} {local_id}; it stays pending")

        return True

    def _fail_batch(self, pending: list, outcome: TransportResult, result: SyncResult) -> None:
        """Mark every record of a failed batch as SyncFailed with the same reason."""
        reason = outcome.reason or "Unknown error"
        conflict = isinstance(outcome, Conflict)
        logger.error(f"Batch push failed for {len(pending)} records: {reason}")
        result.errors.append(reason)

        for record in pending:
            try:
                self.tracker.mark_failed(record, reason, conflict=conflict)
                result.push_failed += 1
            except Exception as e:
                logger.error(f"Error marking {record.sync.local_id} failed: {e}", exc_info=True)
                result.errors.append(f"{record.kind.value} {record.sync.local_id}: {e}")

    def _apply_pulled(self, batch: SyncBatch, result: SyncResult) -> Optional[datetime]:
        """
        Apply pulled records according to the reconciliation rules.

        The returned checkpoint stays below the oldest item that was skipped
        or failed to apply, so the next pull asks for it again.

        Returns:
            New checkpoint candidate, or None to keep the current one
        """
        handled: list[datetime] = []
        failed: list[Optional[datetime]] = []

        for skipped in batch.skipped:
            result.pull_failed += 1
            result.errors.append(f"{skipped.kind.value} {skipped.item_id}: {skipped.error}")
            failed.append(skipped.modified_at)

        for remote in batch.records():
            try:
                decision = decide_pull_action(self.tracker.find_local(remote), remote)

                if decision.action is PullAction.INSERT:
                    self.tracker.insert_remote(remote)
                    result.pulled += 1
                elif decision.action is PullAction.UPDATE:
                    self.tracker.accept_remote(decision.local, remote)
                    result.pulled += 1
                elif decision.action is PullAction.CONFLICT:
                    logger.warning(
                        f"Conflict on {remote.kind.value} {remote.sync.local_id}: "
                        f"keeping local changes, remote update not applied"
                    )
                    result.conflicts += 1
            except Exception as e:
                logger.error(f"Error applying remote {remote.kind.value} {remote.sync.local_id}: {e}", exc_info=True)
                result.errors.append(f"{remote.kind.value} {remote.sync.local_id}: {e}")
                result.pull_failed += 1
                failed.append(remote.sync.modified_at)
            else:
                handled.append(remote.sync.modified_at)

        if failed:
            if None in failed:
                # An unreadable timestamp cannot be bounded
                return None
            oldest_failed = min(failed)
            handled = [t for t in handled if t < oldest_failed]

        return max(handled, default=None)

    def reset_failed(self) -> int:
        """Move every SyncFailed record back to PendingSync."""
        with self._lock:
            return self.tracker.reset_failed()

    def status_summary(self) -> str:
        """Return a one-line description of the sync state."""
        if not self.sync_enabled:
            return "Sync: DISABLED (offline-only mode)"

        pending = self.tracker.pending_count()
        if pending == 0:
            checkpoint = self.tracker.get_checkpoint()
            last_sync = checkpoint.strftime("%Y-%m-%d %H:%M:%S") if checkpoint else "never"
            return f"Sync: UP TO DATE (last sync: {last_sync})"

        failed = self.tracker.failed_count()
        return f"Sync: {pending} items pending ({failed} failed)"

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
