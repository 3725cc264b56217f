"""Reconciliation engine -- brings one activity's subject to its canonical form.

reconcile_activity() follows a fixed order so every skip is decided as early
and as cheaply as possible:

1. fetch the activity (absent -> not_found)
2. no linked deal -> no_parent
3. type out of scope -> out_of_scope (before any deal fetch)
4. fetch the deal (absent -> not_found)
5. no recognized crew -> no_crew
6. build the canonical subject
7. trimmed current subject equals it -> already_canonical
8. one subject write; the store's success flag decides updated/write_failed

Only step 8 writes. Store exceptions propagate to the caller; the sweep and
the webhook sink decide how to report them.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.subject_sync.core.monitoring import reconciliations_total
from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.schemas import Activity, Deal, ReconcileOutcome, ReconcileResult
from src.subject_sync.reconcile.crew import CrewDirectory
from src.subject_sync.reconcile.scope import ChangeFilter
from src.subject_sync.reconcile.title import build_canonical_subject
from src.subject_sync.reconcile.type_catalog import TypeCatalog

logger = structlog.get_logger(__name__)


class ReconciliationEngine:
    """Orchestrates fetch -> compare -> conditional write for one activity.

    Args:
        store: Record store (normally a RetryingClient around PipedriveClient).
        crew: Crew id -> name directory.
        catalog: Activity type label/key catalog.
        scope: Rename scope policy.
    """

    def __init__(
        self,
        store: RecordStore,
        crew: CrewDirectory,
        catalog: TypeCatalog,
        scope: ChangeFilter,
    ) -> None:
        self.store = store
        self.crew = crew
        self.catalog = catalog
        self.scope = scope

    def canonical_subject(self, activity: Activity, deal: Deal, crew_names: list[str]) -> str:
        return build_canonical_subject(deal, self.catalog.label_of(activity.type), crew_names)

    async def reconcile_activity(self, activity_id: int, trigger: str = "activity") -> ReconcileResult:
        """Reconcile a single activity by id."""
        activity = await self.store.get_activity(activity_id)
        if activity is None:
            return self._record(trigger, ReconcileResult(
                activity_id=activity_id,
                outcome=ReconcileOutcome.NOT_FOUND,
                detail="activity not found",
            ))

        if activity.deal_id is None:
            return self._record(trigger, ReconcileResult(
                activity_id=activity_id,
                outcome=ReconcileOutcome.NO_PARENT,
            ))

        if not self.scope.in_scope(activity.type):
            return self._record(trigger, ReconcileResult(
                activity_id=activity_id,
                outcome=ReconcileOutcome.OUT_OF_SCOPE,
                detail=activity.type,
            ))

        deal = await self.store.get_deal(activity.deal_id)
        if deal is None:
            return self._record(trigger, ReconcileResult(
                activity_id=activity_id,
                outcome=ReconcileOutcome.NOT_FOUND,
                detail=f"deal {activity.deal_id} not found",
            ))

        crew_names = self.crew.crew_names(deal.crew_value)
        return await self.reconcile_loaded(activity, deal, crew_names, trigger=trigger)

    async def reconcile_loaded(
        self,
        activity: Activity,
        deal: Deal,
        crew_names: list[str],
        trigger: str = "sweep",
    ) -> ReconcileResult:
        """Steps 3-8 for an activity whose deal and crew are already resolved."""
        if not self.scope.in_scope(activity.type):
            return self._record(trigger, ReconcileResult(
                activity_id=activity.id,
                outcome=ReconcileOutcome.OUT_OF_SCOPE,
                detail=activity.type,
            ))

        if not crew_names:
            return self._record(trigger, ReconcileResult(
                activity_id=activity.id,
                outcome=ReconcileOutcome.NO_CREW,
            ))

        subject = self.canonical_subject(activity, deal, crew_names)
        if activity.subject.strip() == subject:
            return self._record(trigger, ReconcileResult(
                activity_id=activity.id,
                outcome=ReconcileOutcome.ALREADY_CANONICAL,
                subject=subject,
            ))

        result = await self.store.update_activity(activity.id, {"subject": subject})
        if result.success:
            logger.info(
                "reconcile.updated",
                activity_id=activity.id,
                deal_id=deal.id,
                previous=activity.subject,
                subject=subject,
                trigger=trigger,
            )
            outcome = ReconcileOutcome.UPDATED
        else:
            logger.warning(
                "reconcile.write_failed",
                activity_id=activity.id,
                deal_id=deal.id,
                trigger=trigger,
            )
            outcome = ReconcileOutcome.WRITE_FAILED

        return self._record(trigger, ReconcileResult(
            activity_id=activity.id,
            outcome=outcome,
            subject=subject,
        ))

    @staticmethod
    def _record(trigger: str, result: ReconcileResult) -> ReconcileResult:
        reconciliations_total.labels(trigger=trigger, outcome=result.outcome.value).inc()
        if not result.wrote:
            logger.debug(
                "reconcile.skipped",
                activity_id=result.activity_id,
                outcome=result.outcome.value,
                detail=result.detail,
                trigger=trigger,
            )
        return result

    # ── Diagnostics (read-only) ─────────────────────────────────────────────

    async def describe_deal(self, deal_id: int) -> dict[str, Any]:
        """Resolved crew for a deal, without writing anything."""
        deal = await self.store.get_deal(deal_id)
        if deal is None:
            return {"deal_id": deal_id, "found": False}
        return {
            "deal_id": deal_id,
            "found": True,
            "title": deal.title,
            "raw_crew_value": deal.crew_value,
            "crew_names": self.crew.crew_names(deal.crew_value),
        }

    async def describe_activity(self, activity_id: int) -> dict[str, Any]:
        """Resolved type label, scope and canonical subject for an activity, without writing."""
        activity = await self.store.get_activity(activity_id)
        if activity is None:
            return {"activity_id": activity_id, "found": False}

        info: dict[str, Any] = {
            "activity_id": activity_id,
            "found": True,
            "deal_id": activity.deal_id,
            "type_key": activity.type,
            "type_label": self.catalog.label_of(activity.type),
            "in_scope": self.scope.in_scope(activity.type),
            "current_subject": activity.subject,
            "canonical_subject": None,
        }
        if activity.deal_id is None:
            return info

        deal = await self.store.get_deal(activity.deal_id)
        if deal is not None:
            crew_names = self.crew.crew_names(deal.crew_value)
            info["crew_names"] = crew_names
            if crew_names:
                info["canonical_subject"] = self.canonical_subject(activity, deal, crew_names)
        return info
