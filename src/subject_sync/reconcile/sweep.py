"""Sweep orchestrator -- reconciles every open activity of one deal.

Used by the deal webhook, the manual trigger and the drift poller. A failure
on one activity is logged and counted; its siblings are still processed.
"""

from __future__ import annotations

import structlog

from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.schemas import ActivityFilter, Deal, ReconcileOutcome, SweepResult
from src.subject_sync.reconcile.engine import ReconciliationEngine

logger = structlog.get_logger(__name__)

ACTIVITY_PAGE_SIZE = 100


class SweepOrchestrator:
    def __init__(self, engine: ReconciliationEngine, page_size: int = ACTIVITY_PAGE_SIZE) -> None:
        self._engine = engine
        self._page_size = page_size

    @property
    def store(self) -> RecordStore:
        return self._engine.store

    async def sweep_parent(self, deal_id: int, trigger: str = "deal") -> SweepResult:
        """Fetch a deal and sweep its open activities."""
        deal = await self._engine.store.get_deal(deal_id)
        if deal is None:
            logger.info("sweep.deal_not_found", deal_id=deal_id, trigger=trigger)
            return SweepResult(deal_id=deal_id, reason="not_found")
        return await self.sweep_deal(deal, trigger=trigger)

    async def sweep_deal(self, deal: Deal, trigger: str = "deal") -> SweepResult:
        """Sweep open activities of an already fetched deal snapshot."""
        result = SweepResult(deal_id=deal.id)

        crew_names = self._engine.crew.crew_names(deal.crew_value)
        if not crew_names:
            result.reason = "no_crew"
            logger.info("sweep.no_crew", deal_id=deal.id, trigger=trigger)
            return result

        start: int | None = 0
        while start is not None:
            page = await self._engine.store.list_activities(
                ActivityFilter(deal_id=deal.id, done=False, start=start, limit=self._page_size)
            )

            for activity in page.items:
                # Listings can include completed rows when the filter is ignored upstream
                if activity.done:
                    continue
                result.total += 1
                try:
                    outcome = await self._engine.reconcile_loaded(
                        activity, deal, crew_names, trigger=trigger
                    )
                except Exception as exc:
                    result.failed += 1
                    result.errors.append(f"activity {activity.id}: {exc}")
                    logger.error(
                        "sweep.activity_failed",
                        deal_id=deal.id,
                        activity_id=activity.id,
                        error=str(exc),
                    )
                    continue

                if outcome.outcome is ReconcileOutcome.UPDATED:
                    result.updated += 1
                elif outcome.outcome is ReconcileOutcome.WRITE_FAILED:
                    result.failed += 1
                    result.errors.append(f"activity {activity.id}: write rejected")
                else:
                    result.skipped += 1

            start = page.next_start if page.more_items else None

        logger.info(
            "sweep.completed",
            deal_id=deal.id,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            total=result.total,
            trigger=trigger,
        )
        return result
