"""Record id extraction from inbound webhook payloads.

Pipedrive has sent several webhook shapes over time (v1 ``current``/``meta``
bodies, v2 ``data``/``meta.entity_id`` bodies, bare objects from manual
callers). Each extraction rule is a key path; rules are tried in order and
the first one that yields a positive integer wins. Supporting a new shape
means adding a path, not a branch.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

KeyPath = tuple[str, ...]

ACTIVITY_ID_RULES: tuple[KeyPath, ...] = (
    ("data", "id"),
    ("current", "id"),
    ("meta", "entity_id"),
    ("meta", "id"),
    ("id",),
)

DEAL_ID_RULES: tuple[KeyPath, ...] = (
    ("data", "id"),
    ("current", "id"),
    ("meta", "entity_id"),
    ("meta", "id"),
    ("deal_id",),
    ("id",),
)


def _lookup(payload: Any, path: KeyPath) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node


def _as_record_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        record_id = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return record_id if record_id > 0 else None


def extract_record_id(payload: Any, rules: Sequence[KeyPath]) -> int | None:
    """Return the first id any rule finds in payload, or None."""
    for path in rules:
        record_id = _as_record_id(_lookup(payload, path))
        if record_id is not None:
            return record_id
    return None
