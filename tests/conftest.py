"""Shared test doubles and fixtures.

Provides:
- InMemoryRecordStore: RecordStore backed by dicts, recording every call
- FakeRedis: the handful of async set commands ProcessedDealSet uses
- Fixtures for the crew directory, type catalog and a wired engine
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.schemas import (
    Activity,
    ActivityFilter,
    ActivityTypeEntry,
    Deal,
    Page,
    WriteResult,
)
from src.subject_sync.reconcile.crew import CrewDirectory
from src.subject_sync.reconcile.engine import ReconciliationEngine
from src.subject_sync.reconcile.scope import ChangeFilter, ScopePolicy
from src.subject_sync.reconcile.type_catalog import TypeCatalog

CREW_MAP = {
    47: "Kings",
    48: "Johnathan",
    49: "Pena",
    50: "Hector",
}

TYPE_ENTRIES = [
    ActivityTypeEntry(label="Demo", key="demo"),
    ActivityTypeEntry(label="Call", key="call"),
    ActivityTypeEntry(label="Moisture Check/Pickup", key="moisture_check_pickup"),
]


# ── In-Memory Test Doubles ──────────────────────────────────────────────────


class InMemoryRecordStore(RecordStore):
    """In-memory RecordStore for testing without the Pipedrive API."""

    def __init__(self) -> None:
        self.deals: dict[int, Deal] = {}
        self.activities: dict[int, Activity] = {}
        self.types: list[ActivityTypeEntry] = list(TYPE_ENTRIES)
        self.calls: list[tuple[str, Any]] = []
        self.updates: list[tuple[int, dict[str, Any]]] = []
        self.created: list[dict[str, Any]] = []
        self.rejected_updates: set[int] = set()
        self.update_errors: dict[int, Exception] = {}
        self.create_success = True
        self._next_id = 1000

    # ── Seeding helpers ──

    def add_deal(self, deal_id: int, crew: Any = None, **fields: Any) -> Deal:
        deal = Deal(id=deal_id, crew_value=crew, **fields)
        self.deals[deal_id] = deal
        return deal

    def add_activity(self, activity_id: int, deal_id: int | None, type: str = "demo", **fields: Any) -> Activity:
        activity = Activity(id=activity_id, deal_id=deal_id, type=type, **fields)
        self.activities[activity_id] = activity
        return activity

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # ── RecordStore ──

    async def get_activity(self, activity_id: int) -> Activity | None:
        self.calls.append(("get_activity", activity_id))
        return self.activities.get(activity_id)

    async def get_deal(self, deal_id: int) -> Deal | None:
        self.calls.append(("get_deal", deal_id))
        return self.deals.get(deal_id)

    async def list_activities(self, filters: ActivityFilter) -> Page[Activity]:
        self.calls.append(("list_activities", filters))
        rows = [
            a for a in sorted(self.activities.values(), key=lambda a: a.id)
            if (filters.deal_id is None or a.deal_id == filters.deal_id)
            and (filters.done is None or a.done == filters.done)
        ]
        return self._page(rows, filters.start, filters.limit)

    async def list_deals(self, start: int, limit: int) -> Page[Deal]:
        self.calls.append(("list_deals", (start, limit)))
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        rows = sorted(
            self.deals.values(),
            key=lambda d: d.update_time or epoch,
            reverse=True,
        )
        return self._page(rows, start, limit)

    async def update_activity(self, activity_id: int, fields: dict[str, Any]) -> WriteResult:
        self.calls.append(("update_activity", activity_id))
        if activity_id in self.update_errors:
            raise self.update_errors[activity_id]
        self.updates.append((activity_id, fields))
        if activity_id in self.rejected_updates:
            return WriteResult(success=False)
        current = self.activities[activity_id]
        self.activities[activity_id] = current.model_copy(update=fields)
        return WriteResult(success=True, record={"id": activity_id, **fields})

    async def create_activity(self, fields: dict[str, Any]) -> WriteResult:
        self.calls.append(("create_activity", fields))
        if not self.create_success:
            return WriteResult(success=False)
        self._next_id += 1
        self.created.append(fields)
        return WriteResult(success=True, record={"id": self._next_id, **fields})

    async def list_activity_types(self) -> list[ActivityTypeEntry]:
        self.calls.append(("list_activity_types", None))
        return list(self.types)

    @staticmethod
    def _page(rows: list, start: int, limit: int) -> Page:
        chunk = rows[start:start + limit]
        more = start + limit < len(rows)
        return Page(items=chunk, more_items=more, next_start=start + limit if more else None)


class FakeRedis:
    """Async stand-in for the redis set commands used by ProcessedDealSet."""

    def __init__(self) -> None:
        self.sets: dict[str, set[str]] = {}

    async def sismember(self, key: str, member: str) -> int:
        return int(member in self.sets.get(key, set()))

    async def sadd(self, key: str, *members: str) -> int:
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    async def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.sets.pop(k, None) is not None)

    async def ping(self) -> bool:
        return True


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def crew() -> CrewDirectory:
    return CrewDirectory(CREW_MAP)


@pytest.fixture
def catalog() -> TypeCatalog:
    return TypeCatalog(TYPE_ENTRIES)


@pytest.fixture
def engine(store, crew, catalog) -> ReconciliationEngine:
    scope = ChangeFilter(ScopePolicy.ALLOW_ALL, catalog)
    return ReconciliationEngine(store=store, crew=crew, catalog=catalog, scope=scope)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
