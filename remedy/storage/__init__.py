"""Local record storage and change tracking."""

from .record_store import RecordStore, RecordStoreError
from .change_tracker import ChangeTracker

__all__ = ["RecordStore", "RecordStoreError", "ChangeTracker"]
