"""Rename scope policy -- which activity types get canonical subjects."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from src.subject_sync.reconcile.type_catalog import TypeCatalog


class ScopePolicy(str, Enum):
    ALLOW_ALL = "allow_all"
    ALLOW_LIST = "allow_list"


class ChangeFilter:
    """Decides whether an activity type key is in scope for renaming.

    ALLOW_ALL accepts every key and never consults the catalog. ALLOW_LIST
    accepts a key only when its catalog label is one of the configured
    labels; keys the catalog does not know are out of scope.
    """

    def __init__(
        self,
        policy: ScopePolicy,
        catalog: TypeCatalog,
        allowed_labels: Iterable[str] = (),
    ) -> None:
        self.policy = policy
        self._catalog = catalog
        self._allowed = frozenset(allowed_labels)

    @classmethod
    def from_settings(cls, rename_all: bool, allowed_labels: Iterable[str], catalog: TypeCatalog) -> ChangeFilter:
        policy = ScopePolicy.ALLOW_ALL if rename_all else ScopePolicy.ALLOW_LIST
        return cls(policy=policy, catalog=catalog, allowed_labels=allowed_labels)

    def in_scope(self, type_key: str) -> bool:
        if self.policy is ScopePolicy.ALLOW_ALL:
            return True
        if not self._catalog.knows_key(type_key):
            return False
        return self._catalog.label_of(type_key) in self._allowed
