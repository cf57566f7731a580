"""
Change tracking for syncable records.

Moves records through their sync lifecycle and persists every transition
in the local record store.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from ..models.sync_meta import SyncStatus, utc_now
from .record_store import RecordStore

logger = logging.getLogger(__name__)


class ChangeTracker:
    """
    Queries and updates the sync lifecycle of local records.

    Local commands call this synchronously after mutating a record; the
    sync orchestrator uses it to collect and settle pending records.

    Usage:
        tracker = ChangeTracker(RecordStore(Path("data/remedy.db")))

        resource = Resource(title="Read the WAL paper")
        tracker.add(resource)

        resource.complete(rating=4, now=utc_now())
        tracker.mark_dirty(resource)
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize change tracker.

        Args:
            store: Local record store
            clock: Returns the current UTC time; injectable for tests
        """
        self.store = store
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def add(self, record):
        """Persist a newly created record. It stays LocalOnly until edited."""
        self.store.save(record)
        logger.debug(f"Tracking new {record.kind.value} {record.sync.local_id}")
        return record

    def mark_dirty(self, record):
        """Queue a locally modified record for push."""
        record.sync.mark_dirty(self.now())
        self.store.save(record)
        logger.debug(f"Marked dirty: {record.kind.value} {record.sync.local_id} v{record.sync.version}")
        return record

    def mark_deleted(self, record):
        """Soft-delete a record and queue the deletion for push."""
        record.sync.mark_deleted(self.now())
        self.store.save(record)
        logger.info(f"Marked deleted: {record.kind.value} {record.sync.local_id}")
        return record

    def list_pending(self, include_failed: bool = True) -> list:
        """
        List records waiting to be pushed, oldest first.

        Args:
            include_failed: Whether SyncFailed records are included

        Returns:
            Entities of every kind ordered by modified_at ascending
        """
        statuses = [SyncStatus.PENDING_SYNC]
        if include_failed:
            statuses.append(SyncStatus.SYNC_FAILED)
        return self.store.list_by_status(statuses)

    def mark_synced(self, record, remote_id: Optional[str] = None):
        """Record that the remote accepted the record."""
        record.sync.mark_synced(remote_id, now=self.now())
        self.store.save(record)
        logger.debug(f"Marked synced: {record.kind.value} {record.sync.local_id}")
        return record

    def mark_failed(self, record, reason: str, conflict: bool = False):
        """Record a failed push attempt."""
        record.sync.mark_failed(reason, conflict=conflict)
        self.store.save(record)
        logger.warning(
            f"Sync failed for {record.kind.value} {record.sync.local_id} "
            f"(attempt {record.sync.retry_count}): {reason}"
        )
        return record

    def reset_failed(self) -> int:
        """
        Move every SyncFailed record back to PendingSync.

        This is the operator's escape hatch for stuck records, including
        version conflicts.

        Returns:
            Number of records reset
        """
        failed = self.store.list_by_status([SyncStatus.SYNC_FAILED])
        for record in failed:
            record.sync.reset(self.now())
            self.store.save(record)

        if failed:
            logger.info(f"Reset {len(failed)} failed records to pending")
        return len(failed)

    def purge_synced_deletions(self) -> int:
        """Physically remove records whose deletion has been synced."""
        return self.store.purge_synced_deletions()

    def find_local(self, remote):
        """Find the local copy of a remote record by local or remote id."""
        return self.store.find(remote.kind, remote.sync.local_id, remote.sync.remote_id)

    def insert_remote(self, remote):
        """Store a record first seen on the remote as Synced."""
        remote.sync.adopt_as_synced(now=self.now())
        self.store.save(remote)
        logger.debug(f"Inserted remote {remote.kind.value} {remote.sync.local_id}")
        return remote

    def accept_remote(self, local, remote):
        """Overwrite a local Synced record with a newer remote copy."""
        local.copy_fields_from(remote)
        local.sync.accept_remote(remote.sync, now=self.now())
        self.store.save(local)
        logger.debug(
            f"Applied remote update to {local.kind.value} {local.sync.local_id} "
            f"v{local.sync.version}"
        )
        return local

    def get_checkpoint(self) -> Optional[datetime]:
        return self.store.get_checkpoint()

    def set_checkpoint(self, checkpoint: Optional[datetime]) -> None:
        self.store.set_checkpoint(checkpoint)

    def pending_count(self) -> int:
        """Count records waiting for push, failed ones included."""
        counts = self.store.count_by_status()
        return counts[SyncStatus.PENDING_SYNC] + counts[SyncStatus.SYNC_FAILED]

    def failed_count(self) -> int:
        return self.store.count_by_status()[SyncStatus.SYNC_FAILED]
