"""
Tests for the export job engine.

Validates:
- Header row from the registry, rows in record order
- Filters and column selection
- All-or-nothing artifacts (no partial file on failure)
- Exported files import back with the default mapping
"""
from datetime import timedelta
from pathlib import Path

import pytest

from bulkio.adapters.modules import SQLAlchemyModuleAdapter
from bulkio.codec.csv_codec import parse, parse_file
from bulkio.core.exceptions import ArtifactNotReadyError, InvalidQueryError, MissingContextError
from bulkio.core.storage import artifact_dir
from bulkio.core.timeutil import utcnow
from bulkio.models.erp import Project, ProjectTask, StockItem, Warehouse
from bulkio.models.export_job import ExportJob, ExportStatus
from bulkio.models.import_job import ImportStatus
from bulkio.services.export_service import ExportService
from bulkio.services.import_service import ImportService


@pytest.fixture
def service(db, registry_loader):
    return ExportService(db, loader=registry_loader)


@pytest.fixture
def warehouses(db):
    db.add_all([
        Warehouse(code="WH-1", name="Main", location="Tarkwa", description="Central, stores"),
        Warehouse(code="WH-2", name="North", location="Kumasi", is_active=False),
    ])
    db.commit()


def _rows(path):
    parsed = parse_file(path)
    return parsed.headers, [r.values for r in parsed.rows]


def test_export_all_records(service, warehouses):
    job = service.run_export(module="warehouses")

    assert job.status == ExportStatus.COMPLETED
    assert job.total_rows == 2
    headers, rows = _rows(job.artifact_path)
    assert headers == ["code", "name", "location", "description", "isActive"]
    assert rows == [
        ["WH-1", "Main", "Tarkwa", "Central, stores", "true"],
        ["WH-2", "North", "Kumasi", "", "false"],
    ]


def test_export_filters_and_columns(service, warehouses):
    job = service.run_export(module="warehouses", filters={"is_active": "false"}, columns=["name", "code"])

    headers, rows = _rows(job.artifact_path)
    assert headers == ["name", "code"]
    assert rows == [["North", "WH-2"]]


def test_empty_result_writes_header_only(service):
    job = service.run_export(module="warehouses")
    assert job.status == ExportStatus.COMPLETED
    assert job.total_rows == 0
    assert Path(job.artifact_path).read_bytes() == b"code,name,location,description,isActive\n"


def test_file_name_is_sanitized(service, warehouses):
    job = service.start_export(module="warehouses", file_name="../monthly report")
    assert job.file_name == ".._monthly_report.csv"


def test_default_file_name(service):
    job = service.start_export(module="warehouses")
    assert job.file_name.startswith("warehouses-export-")
    assert job.file_name.endswith(".csv")


def test_unknown_filter_rejected(service):
    with pytest.raises(InvalidQueryError):
        service.start_export(module="warehouses", filters={"colour": "red"})


def test_unknown_column_rejected(service):
    with pytest.raises(InvalidQueryError):
        service.start_export(module="warehouses", columns=["code", "colour"])


def test_bad_filter_value_rejected_up_front(db, service, warehouses):
    with pytest.raises(InvalidQueryError, match="is_active"):
        service.start_export(module="warehouses", filters={"is_active": "perhaps"})
    assert db.query(ExportJob).count() == 0


def test_bad_filter_value_rejected_by_preview(service, warehouses):
    with pytest.raises(InvalidQueryError, match="current_quantity"):
        service.preview(module="inventory", filters={"current_quantity": "lots"})


def test_filter_value_must_be_scalar(service):
    with pytest.raises(InvalidQueryError, match="single value"):
        service.start_export(module="warehouses", filters={"code": ["WH-1", "WH-2"]})


def test_failure_leaves_no_artifact(service, warehouses, monkeypatch):
    def broken_serialize(self, record, columns):
        if record.code == "WH-2":
            raise RuntimeError("connection reset")
        return [str(record.code)] * len(columns)

    monkeypatch.setattr(SQLAlchemyModuleAdapter, "serialize_row", broken_serialize)
    before = set(artifact_dir().iterdir())

    job = service.run_export(module="warehouses")

    assert job.status == ExportStatus.FAILED
    assert job.artifact_path is None
    assert "connection reset" in job.error_message
    assert set(artifact_dir().iterdir()) == before
    with pytest.raises(ArtifactNotReadyError):
        service.artifact(job.id)


def test_artifact_not_ready_while_pending(service):
    job = service.start_export(module="warehouses")
    with pytest.raises(ArtifactNotReadyError):
        service.artifact(job.id)


def test_inventory_exports_warehouse_code(db, service, warehouses):
    warehouse = db.query(Warehouse).filter_by(code="WH-1").one()
    db.add(StockItem(item_code="SKU-1", name="Helmet", category="SAFETY_GEAR", unit="PIECES",
                     warehouse_id=warehouse.id, current_quantity=7))
    db.commit()

    job = service.run_export(
        module="inventory", columns=["item_code", "warehouse_code", "current_quantity"],
        filters={"warehouse_code": "WH-1"},
    )

    headers, rows = _rows(job.artifact_path)
    assert headers == ["itemCode", "warehouseCode", "initialQuantity"]
    assert rows == [["SKU-1", "WH-1", "7"]]


def test_project_tasks_need_context(service):
    with pytest.raises(MissingContextError):
        service.start_export(module="project_tasks")


def test_project_tasks_export_only_context_project(db, service):
    first = Project(project_code="PRJ-1", name="One")
    second = Project(project_code="PRJ-2", name="Two")
    db.add_all([first, second])
    db.flush()
    db.add_all([
        ProjectTask(project_id=first.id, title="Survey", sort_order=1),
        ProjectTask(project_id=second.id, title="Drill", sort_order=1),
    ])
    db.commit()

    job = service.run_export(module="project_tasks", context={"project_id": first.id}, columns=["title"])
    assert _rows(job.artifact_path)[1] == [["Survey"]]


def test_preview_limits_rows(service, warehouses):
    preview = service.preview(module="warehouses", columns=["code"], limit=1)
    assert preview["headers"] == ["code"]
    assert preview["rows"] == [["WH-1"]]


def test_exported_file_imports_back(db, service, warehouses, registry_loader):
    job = service.run_export(module="warehouses")
    content = Path(job.artifact_path).read_bytes()
    db.query(Warehouse).delete()
    db.commit()

    imports = ImportService(db, loader=registry_loader)
    import_job = imports.process_job(imports.create_job("warehouses", content, job.file_name).id)

    assert import_job.status == ImportStatus.COMPLETED
    assert import_job.success_rows == 2
    restored = {w.code: w for w in db.query(Warehouse).all()}
    assert restored["WH-1"].description == "Central, stores"
    assert restored["WH-2"].is_active is False


def test_list_jobs_newest_first(service):
    first = service.start_export(module="warehouses")
    second = service.start_export(module="warehouses")
    assert [j.id for j in service.list_jobs()] == [second.id, first.id]


def test_artifact_header_is_parseable(service, warehouses):
    job = service.run_export(module="warehouses")
    assert parse(service.artifact(job.id).read_bytes()).headers[0] == "code"


def _interrupted(db, job, minutes_ago):
    """Leave ``job`` as a worker that died mid-write would."""
    job.status = ExportStatus.PROCESSING
    job.started_at = utcnow() - timedelta(minutes=minutes_ago)
    db.commit()
    partial = ExportService._artifact_paths(job)[1]
    partial.write_bytes(b"code,name\nWH-1,Ma")
    return partial


def test_recover_stuck_returns_export_to_pending(db, service, warehouses):
    job = service.start_export(module="warehouses")
    partial = _interrupted(db, job, minutes_ago=120)

    assert service.recover_stuck(minutes=30) == [job.id]
    db.refresh(job)
    assert job.status == ExportStatus.PENDING
    assert job.started_at is None
    assert not partial.exists()

    rerun = service.process_job(job.id)
    assert rerun.status == ExportStatus.COMPLETED
    assert rerun.total_rows == 2


def test_recent_processing_export_is_not_stuck(db, service):
    job = service.start_export(module="warehouses")
    partial = _interrupted(db, job, minutes_ago=1)

    assert service.recover_stuck(minutes=30) == []
    db.refresh(job)
    assert job.status == ExportStatus.PROCESSING
    assert partial.exists()
    partial.unlink()


def test_recovery_threshold_has_a_floor(db, service):
    job = service.start_export(module="warehouses")
    partial = _interrupted(db, job, minutes_ago=3)

    assert service.recover_stuck(minutes=1) == []
    partial.unlink()


def test_process_pending_exports(db, service, warehouses):
    orphan = service.start_export(module="warehouses")
    fresh = service.start_export(module="warehouses")
    orphan.created_at = utcnow() - timedelta(hours=1)
    db.commit()

    assert service.process_pending(older_than_minutes=10) == [orphan.id]
    assert service.get_job(orphan.id).status == ExportStatus.COMPLETED
    assert service.get_job(fresh.id).status == ExportStatus.PENDING
    assert service.process_pending() == [fresh.id]
