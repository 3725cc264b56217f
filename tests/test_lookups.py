"""Unit tests for CrewDirectory, TypeCatalog and ChangeFilter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.subject_sync.config import DEFAULT_CREW_MAP
from src.subject_sync.core.errors import TransientUpstreamError, UpstreamUnavailable
from src.subject_sync.reconcile.crew import CrewDirectory
from src.subject_sync.reconcile.scope import ChangeFilter, ScopePolicy
from src.subject_sync.reconcile.type_catalog import TypeCatalog


# ── CrewDirectory ─────────────────────────────────────────────────────────


class TestCrewDirectory:
    @pytest.fixture
    def directory(self):
        return CrewDirectory(DEFAULT_CREW_MAP)

    def test_unmapped_ids_are_dropped(self, directory):
        assert directory.crew_names([47, 999]) == ["Kings"]

    @pytest.mark.parametrize("raw", [None, "", [], "  "])
    def test_empty_field_gives_no_crew(self, directory, raw):
        assert directory.crew_names(raw) == []

    def test_single_int_and_numeric_string(self, directory):
        assert directory.crew_names(50) == ["Hector"]
        assert directory.crew_names("50") == ["Hector"]

    def test_comma_separated_multi_option_value(self, directory):
        assert directory.crew_names("48,52") == ["Johnathan", "Anastacio"]

    def test_preserves_field_order_and_dedupes(self, directory):
        assert directory.crew_names([54, 47, 54]) == ["Kim", "Kings"]

    def test_option_dicts_and_garbage_are_tolerated(self, directory):
        assert directory.crew_names([{"id": 49}, "abc", None, 51]) == ["Pena", "Sebastian"]

    def test_boolean_is_not_an_id(self, directory):
        assert directory.crew_names(True) == []


# ── TypeCatalog ───────────────────────────────────────────────────────────


class TestTypeCatalog:
    @pytest.mark.asyncio
    async def test_warm_loads_table(self, store):
        catalog = TypeCatalog()
        assert not catalog.is_warm

        await catalog.warm(store)

        assert catalog.is_warm
        assert catalog.label_of("demo") == "Demo"
        assert catalog.key_of("Moisture Check/Pickup") == "moisture_check_pickup"

    @pytest.mark.asyncio
    async def test_warm_failure_raises_upstream_unavailable(self):
        store = AsyncMock()
        store.list_activity_types.side_effect = TransientUpstreamError("HTTP 503", status_code=503)
        catalog = TypeCatalog()

        with pytest.raises(UpstreamUnavailable):
            await catalog.warm(store)

        assert not catalog.is_warm

    def test_unknown_values_pass_through(self, catalog):
        assert catalog.label_of("unknown_key") == "unknown_key"
        assert catalog.key_of("Unknown Label") == "Unknown Label"
        assert not catalog.knows_key("unknown_key")


# ── ChangeFilter ──────────────────────────────────────────────────────────


class TestChangeFilter:
    def test_allow_all_accepts_anything_without_catalog(self):
        scope = ChangeFilter(ScopePolicy.ALLOW_ALL, TypeCatalog())
        assert scope.in_scope("demo")
        assert scope.in_scope("whatever")

    def test_allow_list_matches_on_label(self, catalog):
        scope = ChangeFilter(ScopePolicy.ALLOW_LIST, catalog, ["Demo"])
        assert scope.in_scope("demo")
        assert not scope.in_scope("call")

    def test_allow_list_unknown_key_is_out_of_scope(self, catalog):
        scope = ChangeFilter(ScopePolicy.ALLOW_LIST, catalog, ["Demo", "mystery"])
        assert not scope.in_scope("mystery")

    def test_allow_list_with_cold_catalog_rejects_everything(self):
        scope = ChangeFilter(ScopePolicy.ALLOW_LIST, TypeCatalog(), ["Demo"])
        assert not scope.in_scope("demo")

    def test_from_settings_selects_policy(self, catalog):
        assert ChangeFilter.from_settings(True, [], catalog).policy is ScopePolicy.ALLOW_ALL
        assert ChangeFilter.from_settings(False, ["Demo"], catalog).policy is ScopePolicy.ALLOW_LIST
