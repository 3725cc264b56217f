"""FastAPI dependency injection for sync services and shared-secret auth.

Services are created once in the application lifespan and stored on
app.state; these dependencies hand them to endpoints, answering 503 when a
service was not initialized.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.subject_sync.config import Settings, get_settings
from src.subject_sync.core.background import BackgroundTaskRunner
from src.subject_sync.core.security import verify_shared_secret
from src.subject_sync.reconcile.derived_tasks import DerivedTaskCreator
from src.subject_sync.reconcile.engine import ReconciliationEngine
from src.subject_sync.reconcile.poller import DriftPoller
from src.subject_sync.reconcile.sweep import SweepOrchestrator


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_app_settings(request: Request) -> Settings:
    """Settings stored on app.state, falling back to the process singleton."""
    return getattr(request.app.state, "settings", None) or get_settings()


async def require_shared_secret(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    verify_shared_secret(request, settings.WEBHOOK_SECRET)


def get_engine(request: Request) -> ReconciliationEngine:
    return _from_state(request, "engine", "Reconciliation engine")


def get_sweeper(request: Request) -> SweepOrchestrator:
    return _from_state(request, "sweeper", "Sweep orchestrator")


def get_poller(request: Request) -> DriftPoller:
    return _from_state(request, "poller", "Drift poller")


def get_derived_tasks(request: Request) -> DerivedTaskCreator:
    return _from_state(request, "derived_tasks", "Derived task creator")


def get_task_runner(request: Request) -> BackgroundTaskRunner:
    return _from_state(request, "task_runner", "Background task runner")


# Alias for cleaner router declarations
secret_required = Depends(require_shared_secret)
