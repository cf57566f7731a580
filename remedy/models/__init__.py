"""Syncable entity models and sync metadata."""

from .sync_meta import InvalidTransitionError, SyncMeta, SyncStatus
from .entities import (
    Difficulty,
    EnergyLevel,
    EntityKind,
    Resource,
    ResourceType,
    TargetTimeframe,
    TimeSlot,
)

__all__ = [
    "InvalidTransitionError",
    "SyncMeta",
    "SyncStatus",
    "Difficulty",
    "EnergyLevel",
    "EntityKind",
    "Resource",
    "ResourceType",
    "TargetTimeframe",
    "TimeSlot",
]
