"""Reconciliation core -- keeps activity subjects canonical.

Provides:
- CrewDirectory, TypeCatalog, ChangeFilter: lookups and scope policy
- build_canonical_subject: the canonical subject format
- ReconciliationEngine: single-activity fetch/compare/write
- SweepOrchestrator: all open activities of one deal
- DriftPoller: cursor-based periodic drift correction
- DerivedTaskCreator, ProcessedDealSet: idempotent derived task creation
"""

from src.subject_sync.reconcile.crew import CrewDirectory
from src.subject_sync.reconcile.derived_tasks import DerivedTaskCreator, ProcessedDealSet
from src.subject_sync.reconcile.engine import ReconciliationEngine
from src.subject_sync.reconcile.poller import DriftPoller
from src.subject_sync.reconcile.scope import ChangeFilter, ScopePolicy
from src.subject_sync.reconcile.sweep import SweepOrchestrator
from src.subject_sync.reconcile.title import build_canonical_subject
from src.subject_sync.reconcile.type_catalog import TypeCatalog

__all__ = [
    "ChangeFilter",
    "CrewDirectory",
    "DerivedTaskCreator",
    "DriftPoller",
    "ProcessedDealSet",
    "ReconciliationEngine",
    "ScopePolicy",
    "SweepOrchestrator",
    "TypeCatalog",
    "build_canonical_subject",
]
