"""Crew directory -- static crew id -> display name lookup."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class CrewDirectory:
    """Resolves the raw crew field of a deal to crew display names.

    The field may hold a single id (int or numeric string), a comma-separated
    string of ids (multi-option fields), or a list of either. Ids that are not
    in the table are dropped. Names come back in field order, first
    occurrence wins.
    """

    def __init__(self, mapping: Mapping[int, str]) -> None:
        self._mapping = {int(k): v for k, v in mapping.items()}

    def __len__(self) -> int:
        return len(self._mapping)

    @staticmethod
    def parse_ids(raw: Any) -> list[int]:
        if raw is None or raw == "":
            return []
        if isinstance(raw, bool):
            return []
        if isinstance(raw, int):
            return [raw]
        if isinstance(raw, str):
            parts: list[Any] = raw.split(",")
        elif isinstance(raw, (list, tuple, set)):
            parts = list(raw)
        else:
            return []

        ids: list[int] = []
        for part in parts:
            if isinstance(part, dict):
                part = part.get("id")
            try:
                ids.append(int(str(part).strip()))
            except (TypeError, ValueError):
                continue
        return ids

    def crew_names(self, raw: Any) -> list[str]:
        names: list[str] = []
        for crew_id in self.parse_ids(raw):
            name = self._mapping.get(crew_id)
            if name and name not in names:
                names.append(name)
        return names
