"""Activity type catalog -- translation between type labels and stable keys.

Loaded once at startup with warm() and then read for the process lifetime.
Lookups never raise: an unmapped key or label is returned unchanged, so a
stale table at worst shows the raw key where a label was expected.
"""

from __future__ import annotations

import structlog

from src.subject_sync.core.errors import UpstreamUnavailable
from src.subject_sync.crm.adapter import RecordStore
from src.subject_sync.crm.schemas import ActivityTypeEntry

logger = structlog.get_logger(__name__)


class TypeCatalog:
    def __init__(self, entries: list[ActivityTypeEntry] | None = None) -> None:
        self._label_by_key: dict[str, str] = {}
        self._key_by_label: dict[str, str] = {}
        self._warm = False
        if entries is not None:
            self._load(entries)

    def _load(self, entries: list[ActivityTypeEntry]) -> None:
        self._label_by_key = {e.key: e.label for e in entries}
        self._key_by_label = {e.label: e.key for e in entries}
        self._warm = True

    @property
    def is_warm(self) -> bool:
        return self._warm

    async def warm(self, store: RecordStore) -> None:
        """Load the type table from the store.

        Raises:
            UpstreamUnavailable: If the table could not be fetched.
        """
        try:
            entries = await store.list_activity_types()
        except Exception as exc:
            raise UpstreamUnavailable(f"Activity type catalog could not be loaded: {exc}") from exc

        self._load(entries)
        logger.info("type_catalog.warmed", types=len(entries))

    def knows_key(self, key: str) -> bool:
        return key in self._label_by_key

    def label_of(self, key: str) -> str:
        return self._label_by_key.get(key, key)

    def key_of(self, label: str) -> str:
        return self._key_by_label.get(label, label)
