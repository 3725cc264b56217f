"""Pydantic schemas for CRM records and sync results.

Defines the transient read snapshots the engine works with:
- Records: Deal, Activity, ActivityTypeEntry
- Store payloads: ActivityFilter, Page, WriteResult
- Results: ReconcileOutcome, ReconcileResult, SweepResult, PollResult,
  DerivedTaskResult

Deal and Activity are built from raw Pipedrive v1 records via from_record();
the engine never caches them across invocations.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


def _parse_store_timestamp(value: Any) -> datetime | None:
    """Parse Pipedrive "YYYY-MM-DD HH:MM:SS" (UTC) or ISO strings to aware datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _nested_name(record: dict[str, Any], flat_key: str, nested_key: str) -> str | None:
    value = record.get(flat_key)
    if value:
        return value
    nested = record.get(nested_key)
    if isinstance(nested, dict):
        return nested.get("name") or None
    return None


# ── Records ─────────────────────────────────────────────────────────────────


class Deal(BaseModel):
    """Read snapshot of a parent deal (job)."""

    id: int
    title: str | None = None
    org_name: str | None = None
    person_name: str | None = None
    update_time: datetime | None = None
    crew_value: Any = None

    @field_validator("update_time", mode="before")
    @classmethod
    def _parse_update_time(cls, value: Any) -> datetime | None:
        return _parse_store_timestamp(value)

    @classmethod
    def from_record(cls, record: dict[str, Any], crew_field_key: str) -> Deal:
        return cls(
            id=record["id"],
            title=record.get("title"),
            org_name=_nested_name(record, "org_name", "org_id"),
            person_name=_nested_name(record, "person_name", "person_id"),
            update_time=record.get("update_time"),
            crew_value=record.get(crew_field_key) if crew_field_key else None,
        )


class Activity(BaseModel):
    """Read snapshot of a child activity."""

    id: int
    deal_id: int | None = None
    type: str = ""
    subject: str = ""
    done: bool = False
    due_date: date | None = None

    @field_validator("subject", "type", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return value or ""

    @field_validator("due_date", mode="before")
    @classmethod
    def _empty_date(cls, value: Any) -> Any:
        return value or None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Activity:
        return cls(
            id=record["id"],
            deal_id=record.get("deal_id") or None,
            type=record.get("type"),
            subject=record.get("subject"),
            done=bool(record.get("done")),
            due_date=record.get("due_date"),
        )


class ActivityTypeEntry(BaseModel):
    """One row of the activity type table: display label <-> stable key."""

    label: str
    key: str


# ── Store payloads ──────────────────────────────────────────────────────────


class ActivityFilter(BaseModel):
    """Filter for listing activities."""

    deal_id: int | None = None
    done: bool | None = None
    start: int = 0
    limit: int = 100


class Page(BaseModel, Generic[T]):
    """One page of a listing, with the offset of the next page if any."""

    items: list[T] = Field(default_factory=list)
    more_items: bool = False
    next_start: int | None = None


class WriteResult(BaseModel):
    """Outcome of a create/update call, as reported by the store."""

    success: bool
    record: dict[str, Any] | None = None


# ── Results ─────────────────────────────────────────────────────────────────


class ReconcileOutcome(str, Enum):
    """What a single reconciliation did."""

    UPDATED = "updated"
    ALREADY_CANONICAL = "already_canonical"
    NOT_FOUND = "not_found"
    NO_PARENT = "no_parent"
    OUT_OF_SCOPE = "out_of_scope"
    NO_CREW = "no_crew"
    WRITE_FAILED = "write_failed"


class ReconcileResult(BaseModel):
    activity_id: int
    outcome: ReconcileOutcome
    subject: str | None = None
    detail: str | None = None

    @property
    def wrote(self) -> bool:
        return self.outcome in (ReconcileOutcome.UPDATED, ReconcileOutcome.WRITE_FAILED)


class SweepResult(BaseModel):
    """Aggregate counts for one sweep over a deal's open activities."""

    deal_id: int
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    reason: str | None = None
    errors: list[str] = Field(default_factory=list)


class PollResult(BaseModel):
    """Summary of one drift-poll cycle."""

    started_at: datetime | None = None
    boundary: datetime | None = None
    deals_seen: int = 0
    deals_swept: int = 0
    deals_failed: int = 0
    activities_updated: int = 0
    stopped_at_boundary: bool = False
    skipped_overlap: bool = False


class DerivedTaskResult(BaseModel):
    """Summary of one derived-task creation run."""

    created: int = 0
    already_processed: int = 0
    no_crew: int = 0
    failed: int = 0
    created_deal_ids: list[int] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
