"""Retrying record store -- bounded retry with linear backoff around any RecordStore.

Only TransientUpstreamError (429, 5xx, network) is retried. Non-retriable
failures pass straight through on the first attempt with no delay. After the
attempt cap the last transient error is re-raised to the caller.

create_activity is the exception: it is sent once, since a retried POST can
create a duplicate activity when only the response was lost.

Uses tenacity like the other upstream clients in this codebase, with
wait_incrementing instead of wait_exponential: attempt n waits
base_delay * n before retrying.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from src.subject_sync.core.errors import TransientUpstreamError
from src.subject_sync.core.monitoring import upstream_retries_total
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

R = TypeVar("R")


class RetryingClient(RecordStore):
    """RecordStore decorator that retries transient failures.

    Args:
        inner: The store actually talking to the CRM.
        max_attempts: Total attempts per call, including the first.
        base_delay: Delay before the first retry, in seconds; each later
            retry waits one more base_delay than the previous one.
        sleep: Awaitable sleep function (tests pass a no-op).
    """

    def __init__(
        self,
        inner: RecordStore,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._inner = inner
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep

    async def _call(self, operation: str, fn: Callable[[], Awaitable[R]]) -> R:
        def _before_sleep(state: RetryCallState) -> None:
            upstream_retries_total.labels(operation=operation).inc()
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "upstream.retry",
                operation=operation,
                attempt=state.attempt_number,
                status_code=getattr(exc, "status_code", None),
                error=str(exc),
                wait_seconds=state.next_action.sleep if state.next_action else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_incrementing(start=self._base_delay, increment=self._base_delay),
            retry=retry_if_exception_type(TransientUpstreamError),
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        async def _attempt() -> R:
            return await fn()

        return await retrying(_attempt)

    async def get_activity(self, activity_id: int) -> Activity | None:
        return await self._call("get_activity", lambda: self._inner.get_activity(activity_id))

    async def get_deal(self, deal_id: int) -> Deal | None:
        return await self._call("get_deal", lambda: self._inner.get_deal(deal_id))

    async def list_activities(self, filters: ActivityFilter) -> Page[Activity]:
        return await self._call("list_activities", lambda: self._inner.list_activities(filters))

    async def list_deals(self, start: int, limit: int) -> Page[Deal]:
        return await self._call("list_deals", lambda: self._inner.list_deals(start, limit))

    async def update_activity(self, activity_id: int, fields: dict[str, Any]) -> WriteResult:
        return await self._call(
            "update_activity", lambda: self._inner.update_activity(activity_id, fields)
        )

    async def create_activity(self, fields: dict[str, Any]) -> WriteResult:
        return await self._inner.create_activity(fields)

    async def list_activity_types(self) -> list[ActivityTypeEntry]:
        return await self._call("list_activity_types", self._inner.list_activity_types)


__all__ = ["RetryingClient"]
