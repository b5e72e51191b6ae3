"""Tests for bike_render.catalog: loading, mountability, search and resolution.

Tests cover:
- Dataset loading, id normalisation and load failures.
- Degrading to an empty catalog when the dataset is unusable.
- Mountability classification from product types and text hints.
- Search filtering, totals and limit clamping.
- Resolution of comma-separated id lists into the three buckets.
- Atomic catalog replacement through CatalogHolder.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bike_render.catalog import (
    AccessoryCatalog,
    CatalogHolder,
    MountabilityPolicy,
    load_catalog_or_empty,
    load_policy,
)
from bike_render.errors import CatalogLoadError
from bike_render.types import AccessoryItem


class TestCatalogLoad:
    """Verify dataset parsing into AccessoryItems."""

    def test_loads_every_record(self, catalog: AccessoryCatalog):
        assert len(catalog) == 6

    def test_numeric_id_is_stringified(self, catalog: AccessoryCatalog):
        item = catalog.get("101")
        assert item is not None
        assert item.id == "101"

    def test_title_is_used_when_name_missing(self, catalog: AccessoryCatalog):
        assert catalog.get("101").name == "Pannier set"

    def test_id_is_trimmed(self, catalog: AccessoryCatalog):
        assert catalog.get("sp1").name == "Engine guard"

    def test_product_types_are_normalized_keys(self, catalog: AccessoryCatalog):
        assert catalog.get("abc").product_types == frozenset({"helmet"})

    def test_missing_file_raises(self, tmp_path: Path, policy: MountabilityPolicy):
        with pytest.raises(CatalogLoadError):
            AccessoryCatalog.load(tmp_path / "nope.json", policy)

    def test_invalid_json_raises(self, tmp_path: Path, policy: MountabilityPolicy):
        path = tmp_path / "broken.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(CatalogLoadError):
            AccessoryCatalog.load(path, policy)

    def test_non_list_dataset_raises(self, tmp_path: Path, policy: MountabilityPolicy):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"id": "x"}), encoding="utf-8")
        with pytest.raises(CatalogLoadError, match="JSON array"):
            AccessoryCatalog.load(path, policy)

    def test_record_without_id_raises(self, tmp_path: Path, policy: MountabilityPolicy):
        path = tmp_path / "noid.json"
        path.write_text(json.dumps([{"name": "Orphan"}]), encoding="utf-8")
        with pytest.raises(CatalogLoadError, match="#0"):
            AccessoryCatalog.load(path, policy)

    def test_load_or_empty_degrades(self, tmp_path: Path, policy: MountabilityPolicy):
        catalog = load_catalog_or_empty(tmp_path / "missing.json", policy)
        assert len(catalog) == 0
        result = catalog.resolve_from_csv("xyz,abc")
        assert result.missing == ["xyz", "abc"]
        assert result.selected == []


class TestMountability:
    """Verify the exclusion policy."""

    def test_disallowed_product_type(self, catalog: AccessoryCatalog):
        assert catalog.is_mountable(catalog.get("abc")) is False

    def test_text_hint(self, catalog: AccessoryCatalog):
        assert catalog.is_mountable(catalog.get("dp")) is False

    def test_mountable_items(self, catalog: AccessoryCatalog):
        for accessory_id in ("xyz", "bag1", "101", "sp1"):
            assert catalog.is_mountable(catalog.get(accessory_id)) is True

    def test_product_type_match_is_case_insensitive(self, policy: MountabilityPolicy):
        item = AccessoryItem("g", "Grips", "Parts", "", frozenset({"gloves"}))
        assert policy.is_mountable(item) is False

    def test_text_hint_matches_category(self, policy: MountabilityPolicy):
        item = AccessoryItem("w", "Rally set", "Rider Wear", "", frozenset())
        assert policy.is_mountable(item) is False

    def test_classification_is_pure(self, policy: MountabilityPolicy):
        first = AccessoryItem("1", "Top case", "Luggage", "Large top case", frozenset({"top case"}))
        second = AccessoryItem("2", "Top case", "Luggage", "Large top case", frozenset({"top case"}))
        assert policy.is_mountable(first) == policy.is_mountable(second) == policy.is_mountable(first)

    def test_default_policy_lists(self):
        policy = load_policy()
        assert "helmet" in policy.disallowed_product_types
        assert "daypack" in policy.disallowed_text_hints

    def test_policy_from_file(self, tmp_path: Path):
        path = tmp_path / "policy.json"
        path.write_text(
            json.dumps({"disallowed_product_types": ["Windshield"], "disallowed_text_hints": []}),
            encoding="utf-8",
        )
        policy = load_policy(path)
        item = AccessoryItem("xyz", "Touring windshield", "", "", frozenset({"windshield"}))
        assert policy.is_mountable(item) is False
        assert policy.exclusion_reason(item) == "excluded by product_type (windshield)"


class TestSearch:
    """Verify catalog search semantics."""

    def test_empty_query_matches_all(self, catalog: AccessoryCatalog):
        result = catalog.search()
        assert result.total == 6
        assert [item.id for item in result.items] == ["abc", "xyz", "bag1", "dp", "101", "sp1"]

    def test_query_is_case_insensitive(self, catalog: AccessoryCatalog):
        result = catalog.search("LUGGAGE")
        assert {item.id for item in result.items} == {"bag1", "dp", "101"}

    def test_query_matches_description(self, catalog: AccessoryCatalog):
        result = catalog.search("crash bar")
        assert [item.id for item in result.items] == ["sp1"]

    def test_mountable_filter_applies_before_total(self, catalog: AccessoryCatalog):
        result = catalog.search("luggage", mountable_only=True)
        assert result.total == 2
        assert [item.id for item in result.items] == ["bag1", "101"]

    def test_total_counts_before_truncation(self, catalog: AccessoryCatalog):
        result = catalog.search(limit=2)
        assert result.total == 6
        assert len(result.items) == 2

    @pytest.mark.parametrize("limit,expected", [(0, 6), (None, 6), (-5, 1), (5000, 6)])
    def test_limit_is_clamped(self, catalog: AccessoryCatalog, limit, expected):
        assert len(catalog.search(limit=limit).items) == expected

    def test_items_are_projections(self, catalog: AccessoryCatalog):
        payload = catalog.search("windshield").as_dict()
        assert payload == {
            "total": 1,
            "items": [
                {
                    "id": "xyz",
                    "name": "Touring windshield",
                    "category": "Ergonomics",
                    "description": "Tall screen for wind protection.",
                }
            ],
        }


class TestResolveFromCsv:
    """Verify id resolution into selected, missing and filtered-out buckets."""

    def test_mixed_input(self, catalog: AccessoryCatalog):
        result = catalog.resolve_from_csv("abc,xyz,qmissing", mountable_only=True)
        assert [item.id for item in result.selected] == ["xyz"]
        assert result.missing == ["qmissing"]
        assert len(result.filtered_out) == 1
        assert result.filtered_out[0].id == "abc"
        assert "product_type" in result.filtered_out[0].reason

    def test_text_hint_reason(self, catalog: AccessoryCatalog):
        result = catalog.resolve_from_csv("dp")
        assert result.filtered_out[0].reason == "excluded by text hint (non-mountable)"

    def test_order_is_preserved(self, catalog: AccessoryCatalog):
        result = catalog.resolve_from_csv("sp1, 101 ,bag1,xyz")
        assert [item.id for item in result.selected] == ["sp1", "101", "bag1", "xyz"]

    def test_duplicates_are_kept(self, catalog: AccessoryCatalog):
        result = catalog.resolve_from_csv("xyz,xyz,nope,nope")
        assert [item.id for item in result.selected] == ["xyz", "xyz"]
        assert result.missing == ["nope", "nope"]

    @pytest.mark.parametrize("csv", ["", "   ", ",, ,", None])
    def test_blank_input_yields_empty_result(self, catalog: AccessoryCatalog, csv):
        result = catalog.resolve_from_csv(csv)
        assert result.as_dict() == {"selected": [], "missing": [], "filtered_out": []}

    def test_mountable_only_disabled(self, catalog: AccessoryCatalog):
        result = catalog.resolve_from_csv("abc,dp", mountable_only=False)
        assert [item.id for item in result.selected] == ["abc", "dp"]
        assert result.filtered_out == []

    @pytest.mark.parametrize(
        "csv",
        [
            "abc,xyz,bag1,dp,101,sp1",
            "q1,q2,xyz",
            "dp,dp,abc, sp1 ,zz",
            "101,,102,,103",
        ],
    )
    def test_every_id_lands_in_one_bucket(self, catalog: AccessoryCatalog, csv):
        tokens = [token.strip() for token in csv.split(",") if token.strip()]
        result = catalog.resolve_from_csv(csv)
        placed = (
            [item.id for item in result.selected]
            + list(result.missing)
            + [item.id for item in result.filtered_out]
        )
        assert sorted(placed) == sorted(tokens)


class TestCatalogHolder:
    """Verify wholesale catalog replacement."""

    def test_swap_replaces_catalog(self, catalog: AccessoryCatalog, policy: MountabilityPolicy):
        holder = CatalogHolder(catalog)
        replacement = AccessoryCatalog((), policy)
        previous = holder.swap(replacement)
        assert previous is catalog
        assert holder.catalog is replacement
        assert len(previous) == 6
