"""Pipedrive v1 REST adapter.

Implements RecordStore over httpx. Authentication is the api_token query
parameter. HTTP failures are classified here so the retry layer can decide:

- 404 on a single-record read -> None
- 429, 5xx, any transport error (connect, read, write, timeout) -> TransientUpstreamError
- any other 4xx, or a read answered with ``success: false`` -> NonRetriableUpstreamError

Writes report the body's ``success`` flag through WriteResult rather than
raising, so callers can distinguish "rejected" from "failed to reach".
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.subject_sync.core.errors import NonRetriableUpstreamError, TransientUpstreamError
from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.schemas import (
    Activity,
    ActivityFilter,
    ActivityTypeEntry,
    Deal,
    Page,
    WriteResult,
)

logger = structlog.get_logger(__name__)


class PipedriveClient(RecordStore):
    """Async client for the Pipedrive v1 REST API.

    Args:
        api_token: Pipedrive API token.
        crew_field_key: Custom field key on deals that holds the crew id(s).
        base_url: API root, e.g. https://api.pipedrive.com/v1.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        api_token: str,
        crew_field_key: str,
        base_url: str = "https://api.pipedrive.com/v1",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._crew_field_key = crew_field_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            params={"api_token": api_token},
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        """Send one request and classify failures.

        Returns the decoded body, or None for a 404 when allow_missing is set.
        """
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"{method} {path}: {exc}") from exc

        status = response.status_code
        if status == 404 and allow_missing:
            return None
        if status == 429 or status >= 500:
            raise TransientUpstreamError(f"{method} {path}: HTTP {status}", status_code=status)
        if status >= 400:
            raise NonRetriableUpstreamError(
                f"{method} {path}: HTTP {status} {response.text[:200]}",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise TransientUpstreamError(f"{method} {path}: invalid JSON body") from exc

    async def _read(self, path: str, params: dict[str, Any] | None = None, allow_missing: bool = False) -> dict[str, Any] | None:
        body = await self._request("GET", path, params=params, allow_missing=allow_missing)
        if body is None:
            return None
        if not body.get("success"):
            raise NonRetriableUpstreamError(f"GET {path}: success=false ({body.get('error')})")
        return body

    @staticmethod
    def _pagination(body: dict[str, Any]) -> tuple[bool, int | None]:
        pagination = (body.get("additional_data") or {}).get("pagination") or {}
        more = bool(pagination.get("more_items_in_collection"))
        return more, pagination.get("next_start") if more else None

    async def get_activity(self, activity_id: int) -> Activity | None:
        body = await self._read(f"/activities/{activity_id}", allow_missing=True)
        if body is None or not body.get("data"):
            return None
        return Activity.from_record(body["data"])

    async def get_deal(self, deal_id: int) -> Deal | None:
        body = await self._read(f"/deals/{deal_id}", allow_missing=True)
        if body is None or not body.get("data"):
            return None
        return Deal.from_record(body["data"], self._crew_field_key)

    async def list_activities(self, filters: ActivityFilter) -> Page[Activity]:
        params: dict[str, Any] = {"start": filters.start, "limit": filters.limit}
        if filters.done is not None:
            params["done"] = int(filters.done)

        if filters.deal_id is not None:
            path = f"/deals/{filters.deal_id}/activities"
        else:
            path = "/activities"

        body = await self._read(path, params=params)
        records = body.get("data") or []
        more, next_start = self._pagination(body)
        return Page[Activity](
            items=[Activity.from_record(r) for r in records],
            more_items=more,
            next_start=next_start,
        )

    async def list_deals(self, start: int, limit: int) -> Page[Deal]:
        body = await self._read(
            "/deals",
            params={"start": start, "limit": limit, "sort": "update_time DESC"},
        )
        records = body.get("data") or []
        more, next_start = self._pagination(body)
        return Page[Deal](
            items=[Deal.from_record(r, self._crew_field_key) for r in records],
            more_items=more,
            next_start=next_start,
        )

    async def update_activity(self, activity_id: int, fields: dict[str, Any]) -> WriteResult:
        body = await self._request("PUT", f"/activities/{activity_id}", json=fields)
        success = bool(body.get("success"))
        if not success:
            logger.warning("pipedrive.update_rejected", activity_id=activity_id, error=body.get("error"))
        return WriteResult(success=success, record=body.get("data"))

    async def create_activity(self, fields: dict[str, Any]) -> WriteResult:
        body = await self._request("POST", "/activities", json=fields)
        success = bool(body.get("success"))
        if not success:
            logger.warning("pipedrive.create_rejected", deal_id=fields.get("deal_id"), error=body.get("error"))
        return WriteResult(success=success, record=body.get("data"))

    async def list_activity_types(self) -> list[ActivityTypeEntry]:
        body = await self._read("/activityTypes")
        return [
            ActivityTypeEntry(label=row["name"], key=row["key_string"])
            for row in body.get("data") or []
            if row.get("name") and row.get("key_string")
        ]


__all__ = ["PipedriveClient"]
