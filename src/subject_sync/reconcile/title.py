"""Canonical subject builder.

The canonical subject is a pure function of the deal snapshot, the resolved
activity type label and the resolved crew names:

    [JOB {deal id}] {deal reference} — {type label} — Crew: {name, name}

- deal reference: first non-blank of organization name, person name, deal
  title, else "Deal"
- type label: blank -> "Activity"
- the crew suffix is present only when there is at least one crew name;
  names are joined with ", " in the order given

Every part is whitespace-collapsed so the result is always a single line.
Reconciliation compares against this string, so any change to the format
renames every in-scope activity on the next sweep.
"""

from __future__ import annotations

from collections.abc import Sequence

from src.subject_sync.crm.schemas import Deal

SEPARATOR = " — "
DEAL_FALLBACK = "Deal"
TYPE_FALLBACK = "Activity"


def _clean(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(str(value).split())


def deal_reference(deal: Deal) -> str:
    for candidate in (deal.org_name, deal.person_name, deal.title):
        cleaned = _clean(candidate)
        if cleaned:
            return cleaned
    return DEAL_FALLBACK


def build_canonical_subject(deal: Deal, type_label: str | None, crew_names: Sequence[str]) -> str:
    parts = [
        f"[JOB {deal.id}] {deal_reference(deal)}",
        _clean(type_label) or TYPE_FALLBACK,
    ]

    crew = [name for name in (_clean(n) for n in crew_names) if name]
    if crew:
        parts.append(f"Crew: {', '.join(crew)}")

    return SEPARATOR.join(parts)
