"""
SQLite-based local record store.

Durable, key-indexed storage for syncable records and the sync checkpoint.
Every write commits its own transaction, so each record update is atomic
and independent of the others.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..models.entities import EntityKind
from ..models.sync_meta import SyncMeta, SyncStatus, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

CHECKPOINT_KEY = "last_sync_time"


class RecordStoreError(Exception):
    """Raised when record store operations fail."""
    pass


class RecordStore:
    """
    SQLite-based persistent record store.

    Features:
    - One table for every entity kind, keyed by (kind, local_id)
    - Sync metadata in columns, entity fields as a JSON payload
    - Metadata table for schema version and sync checkpoint

    Usage:
        store = RecordStore(Path("data/remedy.db"))

        store.save(resource)
        same = store.get(EntityKind.RESOURCE, resource.sync.local_id)
    """

    SCHEMA_VERSION = 1

    CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS records (
            kind TEXT NOT NULL,
            local_id TEXT NOT NULL,
            remote_id TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            modified_at TEXT NOT NULL,
            sync_status TEXT NOT NULL DEFAULT 'LocalOnly',
            deleted INTEGER DEFAULT 0,
            retry_count INTEGER DEFAULT 0,
            last_error TEXT,
            conflicted INTEGER DEFAULT 0,
            last_synced_at TEXT,
            payload TEXT NOT NULL,
            PRIMARY KEY (kind, local_id)
        )
    """

    CREATE_INDEXES_SQL = [
        "CREATE INDEX IF NOT EXISTS idx_remote_id ON records(kind, remote_id)",
        "CREATE INDEX IF NOT EXISTS idx_sync_status ON records(sync_status, modified_at)",
    ]

    CREATE_METADATA_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS _metadata (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """

    SELECT_COLUMNS = """
        SELECT
            kind,
            local_id,
            remote_id,
            version,
            modified_at,
            sync_status,
            deleted,
            retry_count,
            last_error,
            conflicted,
            last_synced_at,
            payload
        FROM records
    """

    def __init__(self, database_path: Path):
        """
        Initialize record store.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

        logger.info(f"Record store initialized at {self.database_path}")

    def _initialize_database(self) -> None:
        """Create tables and record the schema version."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(self.CREATE_METADATA_TABLE_SQL)

            cursor.execute("SELECT value FROM _metadata WHERE key = 'schema_version'")
            row = cursor.fetchone()
            current_version = int(row[0]) if row else 0

            if current_version < self.SCHEMA_VERSION:
                logger.info(f"Upgrading schema from v{current_version} to v{self.SCHEMA_VERSION}")
                cursor.execute(
                    "INSERT OR REPLACE INTO _metadata (key, value) VALUES (?, ?)",
                    ("schema_version", str(self.SCHEMA_VERSION)),
                )

            cursor.execute(self.CREATE_TABLE_SQL)
            for index_sql in self.CREATE_INDEXES_SQL:
                cursor.execute(index_sql)

            conn.commit()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Get a database connection with proper settings.

        Yields:
            SQLite connection in WAL mode

        Raises:
            RecordStoreError: If the database cannot be used
        """
        try:
            conn = sqlite3.connect(
                self.database_path,
                timeout=30.0,
                isolation_level="DEFERRED",
            )
        except sqlite3.Error as e:
            raise RecordStoreError(f"Cannot open {self.database_path}: {e}") from e

        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise RecordStoreError(f"Record store operation failed: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _from_row(row: tuple):
        """Rebuild an entity from a records row."""
        (
            kind,
            local_id,
            remote_id,
            version,
            modified_at,
            sync_status,
            deleted,
            retry_count,
            last_error,
            conflicted,
            last_synced_at,
            payload,
        ) = row

        meta = SyncMeta(
            local_id=local_id,
            remote_id=remote_id,
            version=version,
            modified_at=parse_timestamp(modified_at),
            sync_status=SyncStatus(sync_status),
            deleted=bool(deleted),
            retry_count=retry_count or 0,
            last_error=last_error,
            conflicted=bool(conflicted),
            last_synced_at=parse_timestamp(last_synced_at),
        )
        entity_class = EntityKind(kind).entity_class
        return entity_class.from_payload(json.loads(payload), meta)

    def get(self, kind: EntityKind, local_id: str):
        """
        Get a record by its local identity.

        Returns:
            The entity if found, None otherwise
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                self.SELECT_COLUMNS + " WHERE kind = ? AND local_id = ?",
                (kind.value, local_id),
            )
            row = cursor.fetchone()
            return self._from_row(row) if row else None

    def find(self, kind: EntityKind, local_id: str, remote_id: Optional[str] = None):
        """
        Find a record matching either the local or the remote identifier.

        The local identifier wins when both match different rows.
        """
        record = self.get(kind, local_id)
        if record is not None or not remote_id:
            return record

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                self.SELECT_COLUMNS + " WHERE kind = ? AND remote_id = ?",
                (kind.value, remote_id),
            )
            row = cursor.fetchone()
            return self._from_row(row) if row else None

    def list_by_status(
        self,
        statuses: Iterable[SyncStatus],
        kind: Optional[EntityKind] = None,
    ) -> list:
        """
        List records in any of the given statuses, oldest modification first.

        Args:
            statuses: Statuses to include
            kind: Restrict to one entity kind

        Returns:
            List of entities ordered by modified_at ascending
        """
        status_values = [s.value for s in statuses]
        if not status_values:
            return []

        placeholders = ", ".join("?" for _ in status_values)
        sql = self.SELECT_COLUMNS + f" WHERE sync_status IN ({placeholders})"
        params: list = list(status_values)
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        sql += " ORDER BY modified_at ASC, kind, local_id"

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            return [self._from_row(row) for row in cursor.fetchall()]

    def get_all(self, kind: Optional[EntityKind] = None) -> list:
        """Get every stored record, optionally of one kind."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if kind is None:
                cursor.execute(self.SELECT_COLUMNS + " ORDER BY kind, modified_at")
            else:
                cursor.execute(
                    self.SELECT_COLUMNS + " WHERE kind = ? ORDER BY modified_at",
                    (kind.value,),
                )
            return [self._from_row(row) for row in cursor.fetchall()]

    def save(self, record):
        """
        Insert or update a record.

        Uses INSERT OR REPLACE for idempotent upsert.

        Args:
            record: Entity to save

        Returns:
            The same entity
        """
        meta = record.sync

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO records (
                    kind,
                    local_id,
                    remote_id,
                    version,
                    modified_at,
                    sync_status,
                    deleted,
                    retry_count,
                    last_error,
                    conflicted,
                    last_synced_at,
                    payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.kind.value,
                    meta.local_id,
                    meta.remote_id,
                    meta.version,
                    format_timestamp(meta.modified_at),
                    meta.sync_status.value,
                    1 if meta.deleted else 0,
                    meta.retry_count,
                    meta.last_error,
                    1 if meta.conflicted else 0,
                    format_timestamp(meta.last_synced_at),
                    json.dumps(record.to_payload()),
                ),
            )
            conn.commit()

        logger.debug(
            f"Saved {record.kind.value} {meta.local_id} "
            f"(v{meta.version}, {meta.sync_status.value})"
        )
        return record

    def delete(self, kind: EntityKind, local_id: str) -> bool:
        """
        Physically remove a record.

        Returns:
            True if a record was removed, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM records WHERE kind = ? AND local_id = ?",
                (kind.value, local_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def purge_synced_deletions(self) -> int:
        """
        Remove soft-deleted records whose deletion the remote confirmed.

        Returns:
            Number of records removed
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM records WHERE deleted = 1 AND sync_status = ?",
                (SyncStatus.SYNCED.value,),
            )
            conn.commit()
            purged = cursor.rowcount

        if purged:
            logger.info(f"Purged {purged} synced deletions")
        return purged

    def count_by_status(self) -> dict[SyncStatus, int]:
        """Count records per sync status."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT sync_status, COUNT(*) FROM records GROUP BY sync_status")
            counts = {status: 0 for status in SyncStatus}
            for status, count in cursor.fetchall():
                counts[SyncStatus(status)] = count
            return counts

    def count(self, kind: Optional[EntityKind] = None) -> int:
        """Count stored records."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if kind is None:
                cursor.execute("SELECT COUNT(*) FROM records")
            else:
                cursor.execute("SELECT COUNT(*) FROM records WHERE kind = ?", (kind.value,))
            return cursor.fetchone()[0]

    def get_metadata(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM _metadata WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def set_metadata(self, key: str, value: Optional[str]) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            if value is None:
                cursor.execute("DELETE FROM _metadata WHERE key = ?", (key,))
            else:
                cursor.execute(
                    "INSERT OR REPLACE INTO _metadata (key, value) VALUES (?, ?)",
                    (key, value),
                )
            conn.commit()

    def get_checkpoint(self) -> Optional[datetime]:
        """Return the last successful pull checkpoint, if any."""
        return parse_timestamp(self.get_metadata(CHECKPOINT_KEY))

    def set_checkpoint(self, checkpoint: Optional[datetime]) -> None:
        """Persist the pull checkpoint."""
        self.set_metadata(CHECKPOINT_KEY, format_timestamp(checkpoint))
        logger.debug(f"Checkpoint set to {checkpoint}")

    def clear(self) -> None:
        """
        Clear all records and the checkpoint.

        WARNING: This is destructive. Use only for testing or reset.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM records")
            cursor.execute("DELETE FROM _metadata WHERE key = ?", (CHECKPOINT_KEY,))
            conn.commit()

        logger.warning("All local records cleared")
