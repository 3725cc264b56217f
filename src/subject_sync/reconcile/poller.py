"""Drift poller -- periodic scan that catches activities whose triggers were missed.

There is no changefeed. Each cycle pages deals by update_time descending and
sweeps every deal modified since the cursor (minus a trailing buffer), then
stops at the first older deal. The cursor is set to the time the cycle
*started*, so consecutive cycles overlap by the scan duration plus the buffer;
a write that lands mid-scan is picked up by the next cycle. Re-sweeping a
deal that is already canonical costs reads only.

A run-lock keeps cycles from overlapping: a tick that arrives while a cycle
is still running is skipped and logged. The cursor lives in memory; after a
restart the first cycle looks back POLL_LOOKBACK_MINUTES.

Scheduling uses APScheduler's AsyncIOScheduler with one interval job.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.subject_sync.core.monitoring import poll_cursor_timestamp_seconds, poll_cycles_total
from src.subject_sync.crm.schemas import PollResult
from src.subject_sync.reconcile.sweep import SweepOrchestrator

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DriftPoller:
    """Cursor-based drift detection over deals.

    Args:
        sweeper: SweepOrchestrator used for each touched deal.
        interval_seconds: Scheduled tick interval.
        lookback: Window scanned on the first cycle after start.
        buffer: Trailing buffer subtracted from the cursor to absorb
            visibility lag between a write and the update_time index.
        page_size: Deals per listing page.
        clock: Returns the current UTC time (tests inject a fixed clock).
    """

    def __init__(
        self,
        sweeper: SweepOrchestrator,
        interval_seconds: int = 300,
        lookback: timedelta = timedelta(minutes=60),
        buffer: timedelta = timedelta(seconds=60),
        page_size: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sweeper = sweeper
        self._interval = interval_seconds
        self._lookback = lookback
        self._buffer = buffer
        self._page_size = page_size
        self._clock = clock
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None
        self.cursor: datetime | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def boundary_for(self, now: datetime) -> datetime:
        """Oldest update_time the next cycle still has to sweep."""
        if self.cursor is None:
            return now - self._lookback
        return self.cursor - self._buffer

    async def poll_once(self) -> PollResult:
        """Run one drift-detection cycle, or skip it if one is already running."""
        if self._lock.locked():
            logger.warning("poll.skipped_overlap", cursor=self._cursor_iso())
            poll_cycles_total.labels(status="skipped").inc()
            return PollResult(skipped_overlap=True)

        async with self._lock:
            now = self._clock()
            boundary = self.boundary_for(now)
            logger.info("poll.started", boundary=boundary.isoformat(), cursor=self._cursor_iso())
            try:
                result = await self._scan(now, boundary)
            except Exception:
                poll_cycles_total.labels(status="failed").inc()
                logger.error("poll.failed", boundary=boundary.isoformat(), exc_info=True)
                raise

            self.cursor = now
            poll_cursor_timestamp_seconds.set(now.timestamp())
            poll_cycles_total.labels(status="completed").inc()
            logger.info(
                "poll.completed",
                cursor=now.isoformat(),
                deals_seen=result.deals_seen,
                deals_swept=result.deals_swept,
                deals_failed=result.deals_failed,
                activities_updated=result.activities_updated,
                stopped_at_boundary=result.stopped_at_boundary,
            )
            return result

    async def backfill(self) -> PollResult:
        """Sweep every deal regardless of the cursor. Does not move the cursor."""
        if self._lock.locked():
            logger.warning("backfill.skipped_overlap")
            return PollResult(skipped_overlap=True)

        async with self._lock:
            now = self._clock()
            logger.info("backfill.started")
            result = await self._scan(now, None)
            logger.info(
                "backfill.completed",
                deals_swept=result.deals_swept,
                deals_failed=result.deals_failed,
                activities_updated=result.activities_updated,
            )
            return result

    async def _scan(self, now: datetime, boundary: datetime | None) -> PollResult:
        result = PollResult(started_at=now, boundary=boundary)
        store = self._sweeper.store
        start = 0

        while True:
            page = await store.list_deals(start, self._page_size)

            for deal in page.items:
                result.deals_seen += 1
                if (
                    boundary is not None
                    and deal.update_time is not None
                    and deal.update_time < boundary
                ):
                    result.stopped_at_boundary = True
                    break

                try:
                    sweep = await self._sweeper.sweep_deal(deal, trigger="poll")
                except Exception as exc:
                    result.deals_failed += 1
                    logger.error("poll.deal_failed", deal_id=deal.id, error=str(exc))
                    continue

                result.deals_swept += 1
                result.activities_updated += sweep.updated
                if sweep.failed:
                    result.deals_failed += 1

            if result.stopped_at_boundary:
                break
            if len(page.items) < self._page_size or not page.more_items:
                break
            start = page.next_start if page.next_start is not None else start + self._page_size

        return result

    def _cursor_iso(self) -> str | None:
        return self.cursor.isoformat() if self.cursor else None

    # ── Scheduling ──────────────────────────────────────────────────────────

    async def _tick(self) -> None:
        try:
            await self.poll_once()
        except Exception:
            # Cursor unchanged; the next tick rescans from it
            logger.warning("poll.tick_failed", retry_in_seconds=self._interval)

    def start(self) -> None:
        """Schedule poll_once every interval_seconds on the running event loop."""
        if self._scheduler is not None:
            return
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id="subject_sync_drift_poll",
            name="Drift poll over recently modified deals",
            max_instances=1,
            coalesce=True,
            next_run_time=self._clock(),
        )
        self._scheduler.start()
        logger.info("poll.scheduler_started", interval_seconds=self._interval)

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("poll.scheduler_stopped")
