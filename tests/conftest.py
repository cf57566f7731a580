"""
Pytest configuration and shared fixtures.

Provides a fake clock, a temporary record store, and an in-memory stand-in
for the remote sync service that follows its push/pull contract.
"""

import copy
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Optional
import tempfile

from config.settings import SyncConfig
from remedy.models.entities import (
    Difficulty,
    EnergyLevel,
    EntityKind,
    Resource,
    ResourceType,
    TargetTimeframe,
    TimeSlot,
)
from remedy.models.sync_meta import SyncMeta, format_timestamp, parse_timestamp
from remedy.storage.change_tracker import ChangeTracker
from remedy.storage.record_store import RecordStore
from remedy.transport.models import BatchResponse, SyncBatch
from remedy.transport.results import NetworkError, Ok


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Deterministic clock that moves forward one step on every read."""

    def __init__(self, start: Optional[datetime] = None, step: float = 1.0):
        self.current = start or datetime(2026, 1, 10, 8, 0, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step)

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Remote service fakes
# ============================================================================

class FakeRemote:
    """
    In-memory remote sync service.

    Stores wire items and applies the server-side rules: a push conflicts
    when the stored copy has a different version and a newer modifiedAt;
    accepted writes are restamped with the server clock.
    """

    def __init__(self, clock):
        self.clock = clock
        self.items: dict[tuple[EntityKind, str], dict] = {}

    def _find(self, kind: EntityKind, item: dict) -> Optional[dict]:
        existing = self.items.get((kind, item["id"]))
        if existing is None and item.get("serverId"):
            for (stored_kind, _), stored in self.items.items():
                if stored_kind is kind and stored["serverId"] == item["serverId"]:
                    return stored
        return existing

    def _sync_item(self, kind: EntityKind, item: dict) -> dict:
        existing = self._find(kind, item)

        if existing is not None:
            if (existing["version"] != item["version"]
                    and parse_timestamp(existing["modifiedAt"]) > parse_timestamp(item["modifiedAt"])):
                return {
                    "clientId": item["id"],
                    "serverId": existing["serverId"],
                    "success": False,
                    "error": "Version conflict",
                    "isConflict": True,
                }

            if item["isDeleted"]:
                existing["isDeleted"] = True
            else:
                for key, value in item.items():
                    if key not in ("id", "serverId", "modifiedAt", "version", "isDeleted"):
                        existing[key] = value
            existing["modifiedAt"] = format_timestamp(self.clock())
            existing["version"] += 1
            return {"clientId": item["id"], "serverId": existing["serverId"], "success": True}

        stored = copy.deepcopy(item)
        stored["serverId"] = item["id"]
        stored["modifiedAt"] = format_timestamp(self.clock())
        stored["version"] = 1
        self.items[(kind, item["id"])] = stored
        return {"clientId": item["id"], "serverId": stored["serverId"], "success": True}

    def batch(self, payload: dict) -> dict:
        response = {"successCount": 0, "failureCount": 0}
        for kind in EntityKind:
            results = [self._sync_item(kind, item) for item in payload.get(kind.batch_key, [])]
            response[kind.results_key] = results
            for result in results:
                if result["success"]:
                    response["successCount"] += 1
                else:
                    response["failureCount"] += 1
        return response

    def pull(self, since: Optional[datetime]) -> dict:
        body = {kind.batch_key: [] for kind in EntityKind}
        for (kind, _), stored in self.items.items():
            if since is None or parse_timestamp(stored["modifiedAt"]) > since:
                body[kind.batch_key].append(copy.deepcopy(stored))
        return body

    def edit(self, kind: EntityKind, local_id: str, **changes) -> dict:
        """Change a stored item as another client would."""
        stored = self.items[(kind, local_id)]
        stored.update(changes)
        stored["modifiedAt"] = format_timestamp(self.clock())
        stored["version"] += 1
        return stored


class FakeTransport:
    """
    Transport double backed by FakeRemote.

    Failure results can be injected per call; every call is recorded.
    """

    def __init__(self, remote: FakeRemote):
        self.remote = remote
        self.calls: list[str] = []
        self.health_result = None
        self.batch_result = None
        self.pull_result = None
        self.closed = False

    def health_check(self):
        self.calls.append("health")
        return self.health_result or Ok()

    def push_batch(self, batch: SyncBatch):
        self.calls.append("push")
        if self.batch_result is not None:
            return self.batch_result
        response = self.remote.batch(batch.to_api_payload())
        return Ok(data=BatchResponse.from_api_response(response))

    def pull(self, since=None):
        self.calls.append("pull")
        if self.pull_result is not None:
            return self.pull_result
        return Ok(data=SyncBatch.from_api_response(self.remote.pull(since)))

    def go_offline(self) -> None:
        self.health_result = NetworkError("Network error after 3 attempts", attempts=3)

    def go_online(self) -> None:
        self.health_result = None

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def remote(clock: FakeClock) -> FakeRemote:
    return FakeRemote(clock)


@pytest.fixture
def transport(remote: FakeRemote) -> FakeTransport:
    return FakeTransport(remote)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(server_url="http://remedy.test", max_retries=3, retry_delay_seconds=0)


# ============================================================================
# Storage Fixtures
# ============================================================================

def _temp_path() -> Path:
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return Path(f.name)


def _cleanup(path: Path) -> None:
    for candidate in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
        if candidate.exists():
            candidate.unlink()


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file."""
    path = _temp_path()
    yield path
    _cleanup(path)


@pytest.fixture
def other_db_path() -> Generator[Path, None, None]:
    """A second database, for a second client."""
    path = _temp_path()
    yield path
    _cleanup(path)


@pytest.fixture
def record_store(temp_db_path: Path) -> RecordStore:
    """Create a fresh RecordStore with temp database."""
    return RecordStore(temp_db_path)


@pytest.fixture
def tracker(record_store: RecordStore, clock: FakeClock) -> ChangeTracker:
    return ChangeTracker(record_store, clock=clock)


# ============================================================================
# Entity Fixtures
# ============================================================================

@pytest.fixture
def sample_resource(clock: FakeClock) -> Resource:
    """Create a never-synced resource."""
    return Resource(
        title="Designing Data-Intensive Applications, ch. 5",
        sync=SyncMeta.new(clock()),
        type=ResourceType.BOOK,
        url="https://example.com/ddia",
        description="Replication chapter",
        estimated_time_minutes=45,
        difficulty=Difficulty.HARD,
        created_by_context="commute",
        target_timeframe=TargetTimeframe.THIS_WEEK,
        min_energy_level=EnergyLevel.MEDIUM,
        priority=0.8,
    )


@pytest.fixture
def sample_time_slot(clock: FakeClock) -> TimeSlot:
    """Create a never-synced time slot."""
    return TimeSlot(
        name="Morning focus",
        sync=SyncMeta.new(clock()),
        recurrence_pattern="0 9 * * 1-5",
        typical_duration_minutes=60,
        typical_energy=EnergyLevel.HIGH,
        activity_types=[ResourceType.BOOK, ResourceType.ARTICLE],
    )


@pytest.fixture
def resource_wire() -> dict:
    """Sample resource as the remote sends it."""
    return {
        "id": "6f1c1c9e-3a4b-4c1e-9a3e-1f5b8a2c7d10",
        "serverId": "6f1c1c9e-3a4b-4c1e-9a3e-1f5b8a2c7d10",
        "type": "Video",
        "url": "https://example.com/talk",
        "title": "Local-first software talk",
        "description": "",
        "estimatedTimeMinutes": 30,
        "difficulty": "Easy",
        "savedAt": "2026-01-05T10:00:00Z",
        "createdByContext": "",
        "targetTimeframe": "Today",
        "preferredTimeSlotId": None,
        "minEnergyLevel": "Low",
        "isRecurring": False,
        "priority": 1.0,
        "lastReminded": None,
        "timesSnoozed": 0,
        "relevanceScore": 1.0,
        "isCompleted": False,
        "completedAt": None,
        "rating": None,
        "modifiedAt": "2026-01-05T10:00:00Z",
        "isDeleted": False,
        "version": 2,
    }
