"""Operator endpoints: manual sweeps, poll/backfill triggers, derived tasks, diagnostics.

Manual sweeps and polls run inline and return their result. Backfill can take
minutes, so it is scheduled in the background and acknowledged. Diagnostic
reads never write.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.subject_sync.api.deps import (
    get_derived_tasks,
    get_engine,
    get_poller,
    get_sweeper,
    get_task_runner,
    secret_required,
)
from src.subject_sync.core.background import BackgroundTaskRunner
from src.subject_sync.crm.schemas import (
    DerivedTaskResult,
    PollResult,
    ReconcileResult,
    SweepResult,
)
from src.subject_sync.reconcile.derived_tasks import DerivedTaskCreator
from src.subject_sync.reconcile.engine import ReconciliationEngine
from src.subject_sync.reconcile.poller import DriftPoller
from src.subject_sync.reconcile.sweep import SweepOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["sync"], dependencies=[secret_required])


# ── Manual triggers ──────────────────────────────────────────────────────────


@router.post("/sync/deals/{deal_id}", response_model=SweepResult)
async def sweep_deal(
    deal_id: int,
    sweeper: SweepOrchestrator = Depends(get_sweeper),
) -> SweepResult:
    """Sweep every open activity of one deal now."""
    result = await sweeper.sweep_parent(deal_id, trigger="manual")
    if result.reason == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Deal {deal_id} not found")
    return result


@router.post("/sync/activities/{activity_id}", response_model=ReconcileResult)
async def reconcile_activity(
    activity_id: int,
    engine: ReconciliationEngine = Depends(get_engine),
) -> ReconcileResult:
    """Reconcile one activity now."""
    return await engine.reconcile_activity(activity_id, trigger="manual")


@router.post("/sync/poll", response_model=PollResult)
async def poll_now(poller: DriftPoller = Depends(get_poller)) -> PollResult:
    """Run one drift-poll cycle now (skipped if a cycle is already running)."""
    return await poller.poll_once()


@router.post("/sync/backfill", status_code=status.HTTP_202_ACCEPTED)
async def backfill(
    poller: DriftPoller = Depends(get_poller),
    runner: BackgroundTaskRunner = Depends(get_task_runner),
) -> dict:
    """Schedule a sweep over every deal, ignoring the poll cursor."""
    if poller.running:
        return {"status": "busy"}
    runner.spawn(poller.backfill(), name="backfill")
    logger.info("backfill.scheduled")
    return {"status": "accepted"}


# ── Derived tasks ────────────────────────────────────────────────────────────


@router.post("/sync/derived-tasks", response_model=DerivedTaskResult)
async def create_derived_tasks(
    creator: DerivedTaskCreator = Depends(get_derived_tasks),
) -> DerivedTaskResult:
    """Create the derived task for every crewed deal that does not have one yet."""
    return await creator.run()


@router.delete("/sync/derived-tasks/processed")
async def reset_processed_deals(
    creator: DerivedTaskCreator = Depends(get_derived_tasks),
) -> dict:
    """Forget which deals already got a derived task."""
    removed = await creator.reset()
    return {"status": "reset", "removed": removed}


# ── Diagnostics ──────────────────────────────────────────────────────────────


@router.get("/diagnostics/deals/{deal_id}")
async def diagnose_deal(
    deal_id: int,
    engine: ReconciliationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Resolved crew names for a deal."""
    info = await engine.describe_deal(deal_id)
    if not info["found"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Deal {deal_id} not found")
    return info


@router.get("/diagnostics/activities/{activity_id}")
async def diagnose_activity(
    activity_id: int,
    engine: ReconciliationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Resolved type label, scope and canonical subject for an activity."""
    info = await engine.describe_activity(activity_id)
    if not info["found"]:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Activity {activity_id} not found",
        )
    return info
