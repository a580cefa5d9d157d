"""
Tests for the column mapper.
"""
import pytest

from bulkio.core.exceptions import MappingError
from bulkio.transform.column_mapper import ColumnMapper


@pytest.fixture
def inventory_mapper(registry_loader):
    return ColumnMapper(registry_loader.get_module("inventory"))


def test_suggest_matches_headers_case_insensitively(inventory_mapper):
    suggestions = inventory_mapper.suggest(["ITEMCODE", "Name", "category", "unit", "initialquantity"])
    by_key = {s["key"]: s for s in suggestions}

    assert by_key["item_code"]["source_column"] == "ITEMCODE"
    assert by_key["name"]["source_column"] == "Name"
    assert by_key["current_quantity"]["source_column"] == "initialquantity"
    assert by_key["barcode"]["source_column"] is None
    assert by_key["category"]["enum_values"][0] == "CONSUMABLES"


def test_suggest_falls_back_to_key(inventory_mapper):
    by_key = {s["key"]: s for s in inventory_mapper.suggest(["item_code"])}
    assert by_key["item_code"]["source_column"] == "item_code"


def test_suggest_keeps_field_order(inventory_mapper, registry_loader):
    keys = [s["key"] for s in inventory_mapper.suggest([])]
    assert keys == registry_loader.get_module("inventory").keys


def test_resolve_default_mapping(inventory_mapper):
    mapping = inventory_mapper.resolve(["itemCode", "name", "category", "unit"])
    assert mapping[0] == {"key": "item_code", "source_column": "itemCode", "required": True}


def test_resolve_explicit_dict(inventory_mapper):
    mapping = inventory_mapper.resolve(
        ["SKU", "Title", "Cat", "UoM"],
        {"item_code": "SKU", "name": "Title", "category": "Cat", "unit": "UoM", "bogus": "SKU"},
    )
    by_key = {m["key"]: m["source_column"] for m in mapping}
    assert by_key["item_code"] == "SKU"
    assert "bogus" not in by_key


def test_resolve_explicit_list(inventory_mapper):
    mapping = inventory_mapper.resolve(
        ["SKU", "Title", "Cat", "UoM"],
        [
            {"key": "item_code", "source_column": "SKU"},
            {"key": "name", "source_column": " Title "},
            {"key": "category", "source_column": "Cat"},
            {"key": "unit", "source_column": "UoM"},
        ],
    )
    assert {m["key"]: m["source_column"] for m in mapping}["name"] == "Title"


def test_missing_required_lists_every_key(inventory_mapper):
    with pytest.raises(MappingError) as exc_info:
        inventory_mapper.resolve(["itemCode"])
    assert exc_info.value.missing_keys == ["name", "category", "unit"]


def test_source_column_not_in_file_counts_as_unmapped(inventory_mapper):
    with pytest.raises(MappingError) as exc_info:
        inventory_mapper.resolve(
            ["itemCode", "name", "category"],
            {"item_code": "itemCode", "name": "name", "category": "category", "unit": "Unit"},
        )
    assert exc_info.value.missing_keys == ["unit"]
