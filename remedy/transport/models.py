"""
Wire models for the remote sync service.

These models represent push/pull bodies and per-item push results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Iterator, Optional

from ..models.entities import EntityKind, Resource, TimeSlot
from ..models.sync_meta import parse_timestamp


@dataclass(frozen=True)
class SkippedItem:
    """
    A pulled item that could not be decoded.

    Attributes:
        kind: Kind of the list the item came from
        item_id: The item's id, if readable
        modified_at: The item's modifiedAt, if readable
        error: Why decoding failed
    """
    kind: EntityKind
    item_id: Optional[str]
    modified_at: Optional[datetime]
    error: str

    @classmethod
    def from_api_response(cls, kind: EntityKind, data, error: Exception) -> "SkippedItem":
        item_id = None
        modified_at = None
        if isinstance(data, dict):
            item_id = str(data["id"]) if data.get("id") is not None else None
            try:
                modified_at = parse_timestamp(data.get("modifiedAt"))
            except (AttributeError, TypeError, ValueError):
                modified_at = None
        return cls(kind=kind, item_id=item_id, modified_at=modified_at, error=str(error))


@dataclass
class SyncBatch:
    """
    A set of full records, as pushed to or pulled from the remote.

    Attributes:
        resources: Resource records
        time_slots: Time slot records
        skipped: Pulled items that could not be decoded
    """
    resources: list[Resource] = field(default_factory=list)
    time_slots: list[TimeSlot] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.resources) + len(self.time_slots)

    def records(self) -> Iterator:
        """Yield every record, resources first."""
        yield from self.resources
        yield from self.time_slots

    @classmethod
    def from_records(cls, records: Iterable) -> "SyncBatch":
        """Split a mixed list of records into a batch."""
        batch = cls()
        for record in records:
            if record.kind is EntityKind.RESOURCE:
                batch.resources.append(record)
            else:
                batch.time_slots.append(record)
        return batch

    def to_api_payload(self) -> dict:
        return {
            EntityKind.RESOURCE.batch_key: [r.to_wire() for r in self.resources],
            EntityKind.TIME_SLOT.batch_key: [t.to_wire() for t in self.time_slots],
        }

    @classmethod
    def from_api_response(cls, data: dict) -> "SyncBatch":
        """
        Create a batch from a pull response body.

        Items are decoded one at a time. An item that cannot be decoded is
        recorded in `skipped` instead of failing the whole batch.
        """
        batch = cls()
        for kind in EntityKind:
            target = batch.resources if kind is EntityKind.RESOURCE else batch.time_slots
            for item in data.get(kind.batch_key) or []:
                try:
                    target.append(kind.entity_class.from_wire(item))
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    batch.skipped.append(SkippedItem.from_api_response(kind, item, e))
        return batch


@dataclass(frozen=True)
class BatchItemResult:
    """
    Remote outcome for one pushed record.

    Attributes:
        client_id: Local id of the pushed record
        server_id: Remote id, when the remote stored the record
        success: Whether the remote accepted the record
        error: Failure reason
        is_conflict: True if the remote's copy was newer
    """
    client_id: str
    server_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    is_conflict: bool = False

    @classmethod
    def from_api_response(cls, data: dict) -> "BatchItemResult":
        server_id = data.get("serverId")
        return cls(
            client_id=str(data["clientId"]),
            server_id=str(server_id) if server_id else None,
            success=bool(data.get("success", False)),
            error=data.get("error"),
            is_conflict=bool(data.get("isConflict", False)),
        )


@dataclass
class BatchResponse:
    """Remote response to a batch push."""
    resource_results: list[BatchItemResult] = field(default_factory=list)
    time_slot_results: list[BatchItemResult] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    def results(self) -> Iterator[tuple[EntityKind, BatchItemResult]]:
        """Yield (kind, result) for every item."""
        for item in self.resource_results:
            yield EntityKind.RESOURCE, item
        for item in self.time_slot_results:
            yield EntityKind.TIME_SLOT, item

    @classmethod
    def from_api_response(cls, data: dict) -> "BatchResponse":
        return cls(
            resource_results=[
                BatchItemResult.from_api_response(item)
                for item in data.get(EntityKind.RESOURCE.results_key) or []
            ],
            time_slot_results=[
                BatchItemResult.from_api_response(item)
                for item in data.get(EntityKind.TIME_SLOT.results_key) or []
            ],
            success_count=int(data.get("successCount", 0)),
            failure_count=int(data.get("failureCount", 0)),
        )


@dataclass(frozen=True)
class ItemResponse:
    """Remote response from a direct per-entity endpoint."""
    success: bool
    message: Optional[str] = None
    server_id: Optional[str] = None
    server_version: Optional[int] = None
    server_modified_at: Optional[datetime] = None

    @classmethod
    def from_api_response(cls, data: dict) -> "ItemResponse":
        server_id = data.get("serverId")
        server_version = data.get("serverVersion")
        return cls(
            success=bool(data.get("success", False)),
            message=data.get("message"),
            server_id=str(server_id) if server_id else None,
            server_version=int(server_version) if server_version is not None else None,
            server_modified_at=parse_timestamp(data.get("serverModifiedAt")),
        )
