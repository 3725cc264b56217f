"""Derived task creation with a persistent processed-deal set.

For every deal with a recognized crew, create exactly one follow-up activity
(DERIVED_TASK_TYPE_LABEL, e.g. "Moisture Check/Pickup") due today, carrying
the canonical subject. Deal ids that already got their task are kept in a
Redis set, so repeated runs and restarts never create a second one. The set
can be reset explicitly to allow re-creation.

Runs are serialized by a lock; the set is only written by the running pass.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import date, datetime, timezone

import redis.asyncio as aioredis
import structlog

from src.subject_sync.core.monitoring import derived_tasks_created_total
from src.subject_sync.crm.schemas import Activity, Deal, DerivedTaskResult
from src.subject_sync.reconcile.engine import ReconciliationEngine

logger = structlog.get_logger(__name__)

PROCESSED_SET_NAME = "processed_derived_task_deals"


def _today() -> date:
    return datetime.now(timezone.utc).date()


class ProcessedDealSet:
    """Redis-backed set of deal ids that already have a derived task.

    Args:
        redis_client: redis.asyncio client (decode_responses=True).
        prefix: Key namespace, e.g. "subject_sync".
    """

    def __init__(self, redis_client: aioredis.Redis, prefix: str) -> None:
        self._redis = redis_client
        self._key = f"{prefix}:{PROCESSED_SET_NAME}"

    @property
    def key(self) -> str:
        return self._key

    async def contains(self, deal_id: int) -> bool:
        return bool(await self._redis.sismember(self._key, str(deal_id)))

    async def add(self, deal_id: int) -> None:
        await self._redis.sadd(self._key, str(deal_id))

    async def members(self) -> set[int]:
        return {int(m) for m in await self._redis.smembers(self._key)}

    async def reset(self) -> int:
        """Forget every processed deal. Returns the number of keys removed."""
        removed = await self._redis.delete(self._key)
        logger.info("derived_tasks.processed_reset", key=self._key)
        return removed


class DerivedTaskCreator:
    """Creates one derived task per crewed deal, idempotently across runs.

    Args:
        engine: ReconciliationEngine (store, crew directory, type catalog).
        processed: ProcessedDealSet tracking deals already handled.
        type_label: Label of the activity type to create.
        page_size: Deals per listing page.
        today: Returns the due date for new tasks.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        processed: ProcessedDealSet,
        type_label: str,
        page_size: int = 100,
        today: Callable[[], date] = _today,
    ) -> None:
        self._engine = engine
        self._processed = processed
        self._type_label = type_label
        self._page_size = page_size
        self._today = today
        self._lock = asyncio.Lock()

    @property
    def processed(self) -> ProcessedDealSet:
        return self._processed

    async def run(self) -> DerivedTaskResult:
        async with self._lock:
            return await self._run()

    async def reset(self) -> int:
        async with self._lock:
            return await self._processed.reset()

    async def _run(self) -> DerivedTaskResult:
        result = DerivedTaskResult()
        store = self._engine.store
        type_key = self._engine.catalog.key_of(self._type_label)
        start: int | None = 0

        while start is not None:
            page = await store.list_deals(start, self._page_size)

            for deal in page.items:
                try:
                    await self._process_deal(deal, type_key, result)
                except Exception as exc:
                    result.failed += 1
                    result.errors.append(f"deal {deal.id}: {exc}")
                    logger.error("derived_tasks.deal_failed", deal_id=deal.id, error=str(exc))

            start = page.next_start if page.more_items else None

        logger.info(
            "derived_tasks.run_completed",
            created=result.created,
            already_processed=result.already_processed,
            no_crew=result.no_crew,
            failed=result.failed,
        )
        return result

    async def _process_deal(self, deal: Deal, type_key: str, result: DerivedTaskResult) -> None:
        """Create the derived task for one deal unless it has no crew or already has one.

        A failed processed-set write after a successful create surfaces as an
        error for the deal; the task still counts as created.
        """
        crew_names = self._engine.crew.crew_names(deal.crew_value)
        if not crew_names:
            result.no_crew += 1
            return

        if await self._processed.contains(deal.id):
            result.already_processed += 1
            return

        template = Activity(id=0, deal_id=deal.id, type=type_key)
        subject = self._engine.canonical_subject(template, deal, crew_names)
        write = await self._engine.store.create_activity({
            "subject": subject,
            "type": type_key,
            "deal_id": deal.id,
            "done": 0,
            "due_date": self._today().isoformat(),
        })

        if not write.success:
            result.failed += 1
            result.errors.append(f"deal {deal.id}: create rejected")
            logger.warning("derived_tasks.create_rejected", deal_id=deal.id)
            return

        derived_tasks_created_total.inc()
        result.created += 1
        result.created_deal_ids.append(deal.id)
        logger.info("derived_tasks.created", deal_id=deal.id, subject=subject)

        await self._processed.add(deal.id)
