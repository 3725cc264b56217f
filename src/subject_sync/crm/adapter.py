"""Record store abstract base class -- the interface the reconciliation core reads and writes through.

PipedriveClient implements it against the Pipedrive v1 REST API, and
RetryingClient implements it by wrapping another store with bounded retry.
Tests substitute an in-memory store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.subject_sync.crm.schemas import (
    Activity,
    ActivityFilter,
    ActivityTypeEntry,
    Deal,
    Page,
    WriteResult,
)


class RecordStore(ABC):
    """Abstract interface for the external CRM record store.

    Methods:
        get_activity: Fetch one activity, None if absent.
        get_deal: Fetch one deal, None if absent.
        list_activities: One page of activities matching a filter.
        list_deals: One page of deals ordered by last-modified time, descending.
        update_activity: Write fields on an activity.
        create_activity: Create an activity.
        list_activity_types: The full activity type table.
    """

    @abstractmethod
    async def get_activity(self, activity_id: int) -> Activity | None:
        """Fetch activity by id."""
        ...

    @abstractmethod
    async def get_deal(self, deal_id: int) -> Deal | None:
        """Fetch deal by id."""
        ...

    @abstractmethod
    async def list_activities(self, filters: ActivityFilter) -> Page[Activity]:
        """List activities matching filter criteria."""
        ...

    @abstractmethod
    async def list_deals(self, start: int, limit: int) -> Page[Deal]:
        """List deals sorted by update_time descending."""
        ...

    @abstractmethod
    async def update_activity(self, activity_id: int, fields: dict[str, Any]) -> WriteResult:
        """Update activity fields, return the store's success flag and record."""
        ...

    @abstractmethod
    async def create_activity(self, fields: dict[str, Any]) -> WriteResult:
        """Create an activity, return the store's success flag and record."""
        ...

    @abstractmethod
    async def list_activity_types(self) -> list[ActivityTypeEntry]:
        """Fetch the activity type table."""
        ...
