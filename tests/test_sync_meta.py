"""
Unit tests for sync metadata transitions.
"""

import pytest
from datetime import datetime, timedelta, timezone

from remedy.models.sync_meta import (
    InvalidTransitionError,
    SyncMeta,
    SyncStatus,
    format_timestamp,
    parse_timestamp,
)

T0 = datetime(2026, 1, 10, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def meta() -> SyncMeta:
    return SyncMeta.new(T0)


@pytest.fixture
def pending(meta: SyncMeta) -> SyncMeta:
    meta.mark_dirty(T0 + timedelta(seconds=1))
    return meta


class TestCreation:
    """Tests for SyncMeta construction."""

    def test_new_is_local_only_version_one(self, meta: SyncMeta):
        assert meta.sync_status == SyncStatus.LOCAL_ONLY
        assert meta.version == 1
        assert meta.remote_id is None
        assert meta.local_id

    def test_new_ids_are_unique(self):
        assert SyncMeta.new(T0).local_id != SyncMeta.new(T0).local_id

    def test_zero_version_rejected(self):
        with pytest.raises(ValueError, match="positive integer"):
            SyncMeta(local_id="a", modified_at=T0, version=0)

    def test_empty_local_id_rejected(self):
        with pytest.raises(ValueError, match="local_id"):
            SyncMeta(local_id="", modified_at=T0)

    def test_naive_timestamp_is_utc(self):
        meta = SyncMeta(local_id="a", modified_at=datetime(2026, 1, 1, 12, 0))
        assert meta.modified_at.tzinfo == timezone.utc


class TestMarkDirty:
    """Tests for local mutations."""

    def test_bumps_version_and_queues(self, meta: SyncMeta):
        later = T0 + timedelta(minutes=5)
        meta.mark_dirty(later)

        assert meta.version == 2
        assert meta.sync_status == SyncStatus.PENDING_SYNC
        assert meta.modified_at == later

    def test_version_strictly_increases_on_every_edit(self, meta: SyncMeta):
        versions = []
        for i in range(5):
            meta.mark_dirty(T0 + timedelta(seconds=i))
            versions.append(meta.version)
        assert versions == sorted(set(versions))

    def test_edit_leaves_sync_failed(self, pending: SyncMeta):
        pending.mark_failed("version conflict", conflict=True)
        pending.mark_dirty(T0 + timedelta(minutes=1))

        assert pending.sync_status == SyncStatus.PENDING_SYNC
        assert pending.conflicted is False

    def test_mark_deleted(self, meta: SyncMeta):
        meta.mark_deleted(T0 + timedelta(seconds=3))

        assert meta.deleted is True
        assert meta.version == 2
        assert meta.sync_status == SyncStatus.PENDING_SYNC
        assert meta.is_purgeable is False


class TestPushOutcomes:
    """Tests for mark_synced / mark_failed / reset."""

    def test_mark_synced_attaches_remote_id(self, pending: SyncMeta):
        pending.mark_synced("srv-1", now=T0)

        assert pending.sync_status == SyncStatus.SYNCED
        assert pending.remote_id == "srv-1"
        assert pending.last_synced_at == T0

    def test_mark_synced_keeps_existing_remote_id(self, pending: SyncMeta):
        pending.remote_id = "srv-1"
        pending.mark_synced(None, now=T0)
        assert pending.remote_id == "srv-1"

    def test_mark_synced_clears_diagnostics(self, pending: SyncMeta):
        pending.mark_failed("boom")
        pending.mark_synced("srv-1", now=T0)

        assert pending.retry_count == 0
        assert pending.last_error is None

    def test_local_only_cannot_be_synced(self, meta: SyncMeta):
        with pytest.raises(InvalidTransitionError):
            meta.mark_synced("srv-1")

    def test_mark_failed_counts_retries(self, pending: SyncMeta):
        pending.mark_failed("Server error: 500")
        pending.mark_failed("Server error: 500")

        assert pending.sync_status == SyncStatus.SYNC_FAILED
        assert pending.retry_count == 2
        assert pending.last_error == "Server error: 500"
        assert pending.conflicted is False

    def test_conflict_is_flagged(self, pending: SyncMeta):
        pending.mark_failed("version conflict", conflict=True)
        assert pending.conflicted is True

    def test_synced_record_cannot_fail(self, pending: SyncMeta):
        pending.mark_synced("srv-1")
        with pytest.raises(InvalidTransitionError):
            pending.mark_failed("late failure")

    def test_reset_requeues_and_bumps_version(self, pending: SyncMeta):
        pending.mark_failed("version conflict", conflict=True)
        version = pending.version
        later = T0 + timedelta(hours=1)

        pending.reset(later)

        assert pending.sync_status == SyncStatus.PENDING_SYNC
        assert pending.version == version + 1
        assert pending.modified_at == later
        assert pending.retry_count == 0
        assert pending.last_error is None
        assert pending.conflicted is False

    def test_reset_only_from_failed(self, pending: SyncMeta):
        with pytest.raises(InvalidTransitionError, match="Only failed"):
            pending.reset(T0)


class TestAcceptRemote:
    """Tests for adopting a newer remote copy."""

    def test_version_never_decreases(self, pending: SyncMeta):
        pending.mark_synced("srv-1")
        pending.mark_dirty(T0 + timedelta(seconds=5))
        pending.mark_synced()
        remote = SyncMeta(local_id=pending.local_id, modified_at=T0 + timedelta(days=1), version=1)

        before = pending.version
        pending.accept_remote(remote)

        assert pending.version == before + 1

    def test_takes_higher_remote_version(self, pending: SyncMeta):
        remote = SyncMeta(local_id=pending.local_id, modified_at=T0 + timedelta(days=1), version=40)
        pending.accept_remote(remote)
        assert pending.version == 40

    def test_copies_timestamps_and_deletion(self, pending: SyncMeta):
        remote_time = T0 + timedelta(days=1)
        remote = SyncMeta(
            local_id=pending.local_id,
            remote_id="srv-9",
            modified_at=remote_time,
            deleted=True,
        )
        pending.accept_remote(remote)

        assert pending.modified_at == remote_time
        assert pending.deleted is True
        assert pending.remote_id == "srv-9"
        assert pending.sync_status == SyncStatus.SYNCED
        assert pending.is_purgeable is True


class TestAdoptAsSynced:
    """Tests for taking in a record first seen on the remote."""

    def test_keeps_remote_version_and_time(self):
        remote = SyncMeta.from_wire({"id": "x", "serverId": "x", "version": 7, "modifiedAt": "2026-01-05T10:00:00Z"})

        remote.adopt_as_synced(now=T0)

        assert remote.sync_status == SyncStatus.SYNCED
        assert remote.version == 7
        assert remote.modified_at == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)
        assert remote.last_synced_at == T0

    def test_refuses_pending_record(self, pending: SyncMeta):
        with pytest.raises(InvalidTransitionError):
            pending.adopt_as_synced(now=T0)


class TestWire:
    """Tests for timestamp and wire helpers."""

    def test_numeric_server_id_becomes_string(self):
        meta = SyncMeta.from_wire({"id": 12, "serverId": 345, "modifiedAt": "2026-01-05T10:00:00Z"})

        assert meta.local_id == "12"
        assert meta.remote_id == "345"

    def test_missing_server_id_is_none(self):
        meta = SyncMeta.from_wire({"id": "x", "serverId": None, "modifiedAt": "2026-01-05T10:00:00Z"})
        assert meta.remote_id is None

    def test_parse_accepts_z_suffix(self):
        assert parse_timestamp("2026-01-05T10:00:00Z") == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)

    def test_format_has_fixed_precision(self):
        assert format_timestamp(T0) == "2026-01-10T08:00:00.000000+00:00"

    def test_from_wire_requires_modified_at(self):
        with pytest.raises(ValueError, match="modifiedAt"):
            SyncMeta.from_wire({"id": "x", "version": 1})
