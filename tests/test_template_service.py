"""
Tests for import templates and sample CSVs.
"""
import pytest

from bulkio.codec.csv_codec import parse
from bulkio.core.exceptions import JobNotFoundError, MappingError, UnsupportedModuleError
from bulkio.services.template_service import TemplateService

WAREHOUSE_COLUMNS = [
    {"key": "code", "source_column": "Code"},
    {"key": "name", "source_column": "Name"},
    {"key": "location", "source_column": "Site"},
]


@pytest.fixture
def service(db, registry_loader):
    return TemplateService(db, loader=registry_loader)


def test_list_for_module_includes_fields_and_defaults(service):
    result = service.list_for_module("warehouses")
    assert result["fields"][0]["key"] == "code"
    assert result["default_columns"][0] == {"key": "code", "source_column": "code"}
    assert result["templates"] == []


def test_create_drops_unknown_keys(service):
    template = service.create(
        name="Legacy", module="warehouses",
        columns=WAREHOUSE_COLUMNS + [{"key": "colour", "source_column": "Colour"}],
    )
    assert [c["key"] for c in template.columns] == ["code", "name", "location"]


def test_create_requires_required_keys(service):
    with pytest.raises(MappingError) as exc_info:
        service.create(name="Partial", module="warehouses", columns=WAREHOUSE_COLUMNS[:2])
    assert exc_info.value.missing_keys == ["location"]


def test_only_one_default_per_module(service):
    first = service.create(name="A", module="warehouses", columns=WAREHOUSE_COLUMNS, is_default=True)
    second = service.create(name="B", module="warehouses", columns=WAREHOUSE_COLUMNS, is_default=True)

    assert service.get(first.id).is_default is False
    assert service.get(second.id).is_default is True

    service.update(first.id, is_default=True)
    assert service.get(second.id).is_default is False


def test_update_and_delete(service):
    template = service.create(name="A", module="warehouses", columns=WAREHOUSE_COLUMNS)
    assert service.update(template.id, name="Renamed").name == "Renamed"

    service.delete(template.id)
    with pytest.raises(JobNotFoundError):
        service.get(template.id)


def test_sample_csv(service, registry_loader):
    parsed = parse(service.sample_csv("inventory"))
    assert parsed.headers == registry_loader.get_module("inventory").headers
    rows = list(parsed.rows)
    assert len(rows) == 1
    assert rows[0].as_dict(parsed.headers)["itemCode"] == "SKU-001"


def test_unknown_module(service):
    with pytest.raises(UnsupportedModuleError):
        service.sample_csv("payroll")
