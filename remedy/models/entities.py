"""
Syncable entity models.

Resources (saved things to watch, read or do) and time slots (recurring
windows to do them in). Each entity embeds a SyncMeta and exposes the same
small capability surface so the sync code never switches on concrete type.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import ClassVar, Optional

from .sync_meta import SyncMeta, SyncStatus, ensure_utc, format_timestamp, parse_timestamp


class ResourceType(Enum):
    VIDEO = "Video"
    ARTICLE = "Article"
    BOOK = "Book"
    ACTION = "Action"
    EXPERIMENT = "Experiment"
    EVENT = "Event"


class Difficulty(Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class TargetTimeframe(Enum):
    TODAY = "Today"
    THIS_WEEK = "ThisWeek"
    THIS_MONTH = "ThisMonth"
    SOMEDAY = "Someday"


class EnergyLevel(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class EntityKind(Enum):
    """Kinds of records exchanged with the remote service."""
    RESOURCE = "resource"
    TIME_SLOT = "time_slot"

    @property
    def batch_key(self) -> str:
        """Key of this kind's list in push/pull bodies."""
        return "resources" if self is EntityKind.RESOURCE else "timeSlots"

    @property
    def results_key(self) -> str:
        """Key of this kind's per-item results in a batch response."""
        return "resourceResults" if self is EntityKind.RESOURCE else "timeSlotResults"

    @property
    def entity_class(self) -> type:
        return Resource if self is EntityKind.RESOURCE else TimeSlot


class SyncableEntityMixin:
    """
    Capability surface shared by entities.

    Concrete classes provide `kind`, a `sync` field and
    `to_payload`/`from_payload`.
    """

    @property
    def key(self) -> tuple[EntityKind, str]:
        """Return the local identity of this record."""
        return (self.kind, self.sync.local_id)

    def to_wire(self) -> dict:
        """Full wire item: entity fields plus sync fields."""
        data = self.to_payload()
        data.update(self.sync.to_wire())
        return data

    @classmethod
    def from_wire(cls, data: dict, status: SyncStatus = SyncStatus.SYNCED):
        """Create an entity from a wire item."""
        return cls.from_payload(data, SyncMeta.from_wire(data, status=status))

    def copy_fields_from(self, other) -> None:
        """Overwrite entity-specific fields with another copy's values."""
        if other.kind is not self.kind:
            raise ValueError(f"Cannot copy {other.kind.value} into {self.kind.value}")
        for f in fields(self):
            if f.name != "sync":
                setattr(self, f.name, getattr(other, f.name))


def _enum_or_default(enum_cls, value, default):
    if value in (None, ""):
        return default
    return enum_cls(value)


def _optional_time(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


@dataclass
class Resource(SyncableEntityMixin):
    """
    A saved resource.

    Attributes:
        title: Display title (required)
        type: Kind of resource
        url: Optional link
        estimated_time_minutes: Estimated time to consume
        priority: Priority score from 0.0 to 1.0
        rating: User rating 1-5 once completed
        sync: Embedded sync metadata
    """
    kind: ClassVar[EntityKind] = EntityKind.RESOURCE

    title: str
    sync: SyncMeta = field(default_factory=SyncMeta.new)
    type: ResourceType = ResourceType.ARTICLE
    url: Optional[str] = None
    description: str = ""
    estimated_time_minutes: int = 0
    difficulty: Difficulty = Difficulty.MEDIUM
    saved_at: Optional[datetime] = None
    created_by_context: str = ""
    target_timeframe: TargetTimeframe = TargetTimeframe.SOMEDAY
    preferred_time_slot_id: Optional[str] = None
    min_energy_level: EnergyLevel = EnergyLevel.LOW
    is_recurring: bool = False
    priority: float = 1.0
    last_reminded: Optional[datetime] = None
    times_snoozed: int = 0
    relevance_score: float = 1.0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    rating: Optional[int] = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Resource title is required")
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {self.rating}")
        if self.saved_at is None:
            self.saved_at = self.sync.modified_at
        self.saved_at = ensure_utc(self.saved_at)
        self.last_reminded = _optional_time(self.last_reminded)
        self.completed_at = _optional_time(self.completed_at)

    def complete(self, rating: Optional[int], now: datetime) -> None:
        """Mark the resource done, optionally with a 1-5 rating."""
        if rating is not None and not 1 <= rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {rating}")
        self.is_completed = True
        self.completed_at = ensure_utc(now)
        if rating is not None:
            self.rating = rating
            self.relevance_score = rating / 5.0

    def snooze(self, days: int, now: datetime) -> None:
        """Push the next reminder out by `days` and lower priority by 10%."""
        if self.is_completed:
            raise ValueError(f"Resource '{self.title}' is already completed")
        self.times_snoozed += 1
        self.last_reminded = ensure_utc(now) + timedelta(days=days)
        self.priority *= 0.9

    def to_payload(self) -> dict:
        return {
            "type": self.type.value,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "estimatedTimeMinutes": self.estimated_time_minutes,
            "difficulty": self.difficulty.value,
            "savedAt": format_timestamp(self.saved_at),
            "createdByContext": self.created_by_context,
            "targetTimeframe": self.target_timeframe.value,
            "preferredTimeSlotId": self.preferred_time_slot_id,
            "minEnergyLevel": self.min_energy_level.value,
            "isRecurring": self.is_recurring,
            "priority": self.priority,
            "lastReminded": format_timestamp(self.last_reminded),
            "timesSnoozed": self.times_snoozed,
            "relevanceScore": self.relevance_score,
            "isCompleted": self.is_completed,
            "completedAt": format_timestamp(self.completed_at),
            "rating": self.rating,
        }

    @classmethod
    def from_payload(cls, data: dict, sync: SyncMeta) -> "Resource":
        return cls(
            title=data["title"],
            sync=sync,
            type=_enum_or_default(ResourceType, data.get("type"), ResourceType.ARTICLE),
            url=data.get("url"),
            description=data.get("description") or "",
            estimated_time_minutes=int(data.get("estimatedTimeMinutes") or 0),
            difficulty=_enum_or_default(Difficulty, data.get("difficulty"), Difficulty.MEDIUM),
            saved_at=parse_timestamp(data.get("savedAt")),
            created_by_context=data.get("createdByContext") or "",
            target_timeframe=_enum_or_default(
                TargetTimeframe, data.get("targetTimeframe"), TargetTimeframe.SOMEDAY
            ),
            preferred_time_slot_id=data.get("preferredTimeSlotId"),
            min_energy_level=_enum_or_default(
                EnergyLevel, data.get("minEnergyLevel"), EnergyLevel.LOW
            ),
            is_recurring=bool(data.get("isRecurring", False)),
            priority=float(data.get("priority", 1.0)),
            last_reminded=parse_timestamp(data.get("lastReminded")),
            times_snoozed=int(data.get("timesSnoozed") or 0),
            relevance_score=float(data.get("relevanceScore", 1.0)),
            is_completed=bool(data.get("isCompleted", False)),
            completed_at=parse_timestamp(data.get("completedAt")),
            rating=data.get("rating"),
        )


@dataclass
class TimeSlot(SyncableEntityMixin):
    """
    A recurring window of time.

    Attributes:
        name: Display name (required)
        recurrence_pattern: Cron-like recurrence, e.g. "0 9 * * 1-5"
        typical_duration_minutes: Usual length of the slot
        typical_energy: Usual energy level during the slot
        activity_types: Resource types that fit the slot
        sync: Embedded sync metadata
    """
    kind: ClassVar[EntityKind] = EntityKind.TIME_SLOT

    name: str
    sync: SyncMeta = field(default_factory=SyncMeta.new)
    recurrence_pattern: Optional[str] = None
    typical_duration_minutes: int = 0
    typical_energy: EnergyLevel = EnergyLevel.MEDIUM
    activity_types: list[ResourceType] = field(default_factory=list)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Time slot name is required")

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "recurrencePattern": self.recurrence_pattern,
            "typicalDurationMinutes": self.typical_duration_minutes,
            "typicalEnergy": self.typical_energy.value,
            "activityTypes": ",".join(t.value for t in self.activity_types),
        }

    @classmethod
    def from_payload(cls, data: dict, sync: SyncMeta) -> "TimeSlot":
        raw_types = data.get("activityTypes") or ""
        activity_types = [
            ResourceType(part.strip()) for part in raw_types.split(",") if part.strip()
        ]

        return cls(
            name=data["name"],
            sync=sync,
            recurrence_pattern=data.get("recurrencePattern"),
            typical_duration_minutes=int(data.get("typicalDurationMinutes") or 0),
            typical_energy=_enum_or_default(
                EnergyLevel, data.get("typicalEnergy"), EnergyLevel.MEDIUM
            ),
            activity_types=activity_types,
        )
