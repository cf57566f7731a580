"""
Sync metadata and version ledger.

Every syncable entity embeds one SyncMeta. Status and version changes go
through the transition helpers below, never through direct field writes.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class InvalidTransitionError(ValueError):
    """Raised when a sync status transition is not allowed."""
    pass


class SyncStatus(Enum):
    """Lifecycle status of a syncable record."""
    LOCAL_ONLY = "LocalOnly"
    PENDING_SYNC = "PendingSync"
    SYNCED = "Synced"
    SYNC_FAILED = "SyncFailed"


# Statuses from which a push outcome may be recorded
_PUSHABLE = (SyncStatus.PENDING_SYNC, SyncStatus.SYNC_FAILED)


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 wire timestamp into a UTC datetime."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime for the wire and for storage.

    Fixed microsecond precision keeps stored values lexicographically
    ordered.
    """
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


@dataclass
class SyncMeta:
    """
    Synchronization metadata attached to a local record.

    Attributes:
        local_id: Identifier assigned at creation, stable for the record's life
        modified_at: Timestamp of the last local mutation (UTC)
        remote_id: Identifier assigned by the remote store on first push
        version: Monotonic version counter, starts at 1
        sync_status: Current lifecycle status
        deleted: Soft-delete flag
        retry_count: Number of failed sync attempts since the last success
        last_error: Reason of the last failed attempt
        conflicted: True when the last failure was a version conflict
        last_synced_at: When the remote last confirmed this record
    """
    local_id: str
    modified_at: datetime
    remote_id: Optional[str] = None
    version: int = 1
    sync_status: SyncStatus = SyncStatus.LOCAL_ONLY
    deleted: bool = False
    retry_count: int = 0
    last_error: Optional[str] = None
    conflicted: bool = False
    last_synced_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.local_id:
            raise ValueError("local_id is required")
        if not isinstance(self.version, int) or self.version < 1:
            raise ValueError(f"Version must be a positive integer, got {self.version}")
        if self.retry_count < 0:
            raise ValueError(f"retry_count cannot be negative, got {self.retry_count}")
        self.modified_at = ensure_utc(self.modified_at)

    @classmethod
    def new(cls, now: Optional[datetime] = None) -> "SyncMeta":
        """Create metadata for a freshly created, never-synced record."""
        return cls(local_id=str(uuid.uuid4()), modified_at=now or utc_now())

    @property
    def needs_push(self) -> bool:
        """Check if the record has local changes the remote has not confirmed."""
        return self.sync_status in _PUSHABLE

    @property
    def is_purgeable(self) -> bool:
        """Check if the record's deletion has been confirmed by the remote."""
        return self.deleted and self.sync_status == SyncStatus.SYNCED

    def mark_dirty(self, now: datetime) -> None:
        """Record a local mutation: bump version and queue for push."""
        self.version += 1
        self.modified_at = ensure_utc(now)
        self.sync_status = SyncStatus.PENDING_SYNC
        self.conflicted = False

    def mark_deleted(self, now: datetime) -> None:
        """Soft-delete the record and queue the deletion for push."""
        self.deleted = True
        self.mark_dirty(now)

    def mark_synced(self, remote_id: Optional[str] = None, now: Optional[datetime] = None) -> None:
        """
        Record that the remote accepted the current version.

        Args:
            remote_id: Remote identifier, attached only when provided
            now: Confirmation time

        Raises:
            InvalidTransitionError: If nothing was pending for this record
        """
        if self.sync_status not in _PUSHABLE:
            raise InvalidTransitionError(
                f"Cannot mark {self.local_id} synced from {self.sync_status.value}"
            )
        self.sync_status = SyncStatus.SYNCED
        self.retry_count = 0
        self.last_error = None
        self.conflicted = False
        self.last_synced_at = now or utc_now()
        if remote_id:
            self.remote_id = remote_id

    def mark_failed(self, reason: str, conflict: bool = False) -> None:
        """
        Record a rejected or failed push attempt.

        Args:
            reason: Human-readable failure reason
            conflict: True if the remote reported a version conflict

        Raises:
            InvalidTransitionError: If nothing was pending for this record
        """
        if self.sync_status not in _PUSHABLE:
            raise InvalidTransitionError(
                f"Cannot mark {self.local_id} failed from {self.sync_status.value}"
            )
        self.sync_status = SyncStatus.SYNC_FAILED
        self.retry_count += 1
        self.last_error = reason
        self.conflicted = conflict

    def reset(self, now: datetime) -> None:
        """
        Move a failed record back to PendingSync with clean diagnostics.

        Entering PendingSync always bumps the version and stamps modified_at.
        """
        if self.sync_status != SyncStatus.SYNC_FAILED:
            raise InvalidTransitionError(
                f"Only failed records can be reset, {self.local_id} is {self.sync_status.value}"
            )
        self.retry_count = 0
        self.last_error = None
        self.conflicted = False
        self.mark_dirty(now)

    def accept_remote(self, remote: "SyncMeta", now: Optional[datetime] = None) -> None:
        """
        Adopt the metadata of a newer remote copy.

        The local version still moves strictly forward even if the remote
        counter is behind.
        """
        self.version = max(self.version + 1, remote.version)
        self.modified_at = remote.modified_at
        self.deleted = remote.deleted
        if remote.remote_id:
            self.remote_id = remote.remote_id
        self.sync_status = SyncStatus.SYNCED
        self.retry_count = 0
        self.last_error = None
        self.conflicted = False
        self.last_synced_at = now or utc_now()

    def adopt_as_synced(self, now: Optional[datetime] = None) -> None:
        """
        Take a record first seen on the remote into the local store.

        Version, timestamps and deletion flag stay as the remote sent them.

        Raises:
            InvalidTransitionError: If the record carries un-pushed local changes
        """
        if self.needs_push:
            raise InvalidTransitionError(
                f"Cannot adopt {self.local_id} from {self.sync_status.value}"
            )
        self.sync_status = SyncStatus.SYNCED
        self.retry_count = 0
        self.last_error = None
        self.conflicted = False
        self.last_synced_at = now or utc_now()

    def to_wire(self) -> dict:
        """Sync fields carried by every wire item."""
        return {
            "id": self.local_id,
            "serverId": self.remote_id,
            "modifiedAt": format_timestamp(self.modified_at),
            "isDeleted": self.deleted,
            "version": self.version,
        }

    @classmethod
    def from_wire(cls, data: dict, status: SyncStatus = SyncStatus.SYNCED) -> "SyncMeta":
        """Create metadata from a wire item."""
        modified_at = parse_timestamp(data.get("modifiedAt"))
        if modified_at is None:
            raise ValueError(f"Record {data.get('id')} has no modifiedAt")

        remote_id = data.get("serverId")
        return cls(
            local_id=str(data["id"]),
            remote_id=str(remote_id) if remote_id else None,
            version=int(data.get("version", 1)),
            modified_at=modified_at,
            sync_status=status,
            deleted=bool(data.get("isDeleted", False)),
        )
