"""Pipedrive webhook receivers.

Both endpoints acknowledge immediately and run the reconciliation in the
background, so slow upstream calls never push the sender into its retry
timeout. The acknowledgment says nothing about the eventual outcome; failures
after it are logged by the BackgroundTaskRunner.

Requests must carry the shared secret (see core.security).
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request

from src.subject_sync.api.deps import (
    get_engine,
    get_sweeper,
    get_task_runner,
    secret_required,
)
from src.subject_sync.core.background import BackgroundTaskRunner
from src.subject_sync.reconcile.engine import ReconciliationEngine
from src.subject_sync.reconcile.sweep import SweepOrchestrator
from src.subject_sync.webhooks import ACTIVITY_ID_RULES, DEAL_ID_RULES, extract_record_id

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"], dependencies=[secret_required])


async def _read_payload(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/activity")
async def activity_changed(
    request: Request,
    engine: ReconciliationEngine = Depends(get_engine),
    runner: BackgroundTaskRunner = Depends(get_task_runner),
) -> dict:
    """Activity added/updated: reconcile that one activity."""
    payload = await _read_payload(request)
    activity_id = extract_record_id(payload, ACTIVITY_ID_RULES)
    if activity_id is None:
        logger.warning("webhook.activity_id_missing")
        return {"status": "ignored"}

    runner.spawn(
        engine.reconcile_activity(activity_id, trigger="activity_webhook"),
        name=f"reconcile_activity_{activity_id}",
        activity_id=activity_id,
    )
    logger.info("webhook.accepted", kind="activity", activity_id=activity_id)
    return {"status": "accepted", "activity_id": activity_id}


@router.post("/deal")
async def deal_changed(
    request: Request,
    sweeper: SweepOrchestrator = Depends(get_sweeper),
    runner: BackgroundTaskRunner = Depends(get_task_runner),
) -> dict:
    """Deal added/updated: sweep all its open activities."""
    payload = await _read_payload(request)
    deal_id = extract_record_id(payload, DEAL_ID_RULES)
    if deal_id is None:
        logger.warning("webhook.deal_id_missing")
        return {"status": "ignored"}

    runner.spawn(
        sweeper.sweep_parent(deal_id, trigger="deal_webhook"),
        name=f"sweep_deal_{deal_id}",
        deal_id=deal_id,
    )
    logger.info("webhook.accepted", kind="deal", deal_id=deal_id)
    return {"status": "accepted", "deal_id": deal_id}
