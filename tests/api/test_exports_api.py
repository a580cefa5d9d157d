"""
Integration tests for export, scheduled export, template and module endpoints.
"""
import pytest

from bulkio.models.erp import Warehouse
from bulkio.services.export_service import ExportService

pytestmark = pytest.mark.api


@pytest.fixture
def warehouses(db):
    db.add_all([
        Warehouse(code="WH-1", name="Main", location="Tarkwa"),
        Warehouse(code="WH-2", name="North", location="Kumasi"),
    ])
    db.commit()


def test_health(client, api_prefix):
    response = client.get(f"{api_prefix}/health")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"


def test_root(client):
    assert client.get("/").json()["name"] == "BulkIO"


def test_modules(client, api_prefix):
    body = client.get(f"{api_prefix}/modules").json()
    names = [m["name"] for m in body["modules"]]
    assert "warehouses" in names
    assert body["total"] == len(names)


def test_export_and_download(client, api_prefix, warehouses):
    response = client.post(
        f"{api_prefix}/exports",
        json={"module": "warehouses", "columns": ["code", "name"], "file_name": "stores"},
    )
    assert response.status_code == 202
    job_id = response.json()["id"]

    job = client.get(f"{api_prefix}/exports/{job_id}").json()
    assert job["status"] == "COMPLETED"
    assert job["total_rows"] == 2

    download = client.get(f"{api_prefix}/exports/{job_id}/download")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")
    assert "stores.csv" in download.headers["content-disposition"]
    assert download.content == b"code,name\nWH-1,Main\nWH-2,North\n"


def test_download_before_completion_conflicts(client, api_prefix, db, registry_loader):
    job = ExportService(db, loader=registry_loader).start_export(module="warehouses")
    assert client.get(f"{api_prefix}/exports/{job.id}/download").status_code == 409


def test_export_unknown_filter(client, api_prefix):
    response = client.post(f"{api_prefix}/exports", json={"module": "warehouses", "filters": {"colour": "red"}})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_query"


def test_export_bad_filter_value(client, api_prefix):
    response = client.post(f"{api_prefix}/exports", json={"module": "warehouses", "filters": {"is_active": "perhaps"}})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_query"
    assert client.get(f"{api_prefix}/exports").json()["total"] == 0


def test_scheduled_export_bad_filter_value(client, api_prefix):
    response = client.post(
        f"{api_prefix}/scheduled-exports",
        json={
            "name": "Active stores",
            "module": "warehouses",
            "schedule": "daily",
            "recipients": ["ops@example.com"],
            "filters": {"is_active": "maybe"},
        },
    )
    assert response.status_code == 400
    assert "is_active" in response.json()["detail"]


def test_export_preview(client, api_prefix, warehouses):
    body = client.post(
        f"{api_prefix}/exports/preview", json={"module": "warehouses", "columns": ["code"], "limit": 1}
    ).json()
    assert body["rows"] == [["WH-1"]]


def test_scheduled_export_endpoints(client, api_prefix, warehouses):
    response = client.post(
        f"{api_prefix}/scheduled-exports",
        json={
            "name": "Daily stores",
            "module": "warehouses",
            "schedule": "daily",
            "recipients": ["ops@example.com"],
        },
    )
    assert response.status_code == 201
    schedule_id = response.json()["id"]
    assert response.json()["next_run_at"] is not None

    patched = client.patch(f"{api_prefix}/scheduled-exports/{schedule_id}", json={"schedule": "weekly"}).json()
    assert patched["schedule"] == "weekly"

    inactive = client.patch(f"{api_prefix}/scheduled-exports/{schedule_id}/active", json={"is_active": False})
    assert inactive.json()["is_active"] is False

    # No mail provider is configured in tests: the run succeeds, delivery does not
    run = client.post(f"{api_prefix}/scheduled-exports/{schedule_id}/run").json()
    assert run["status"] == "SUCCESS"
    assert run["delivery_error"]

    runs = client.get(f"{api_prefix}/scheduled-exports/{schedule_id}/runs").json()
    assert runs["total"] == 1

    listing = client.get(f"{api_prefix}/scheduled-exports").json()
    assert listing["schedules"][0]["id"] == schedule_id


def test_scheduled_export_bad_schedule(client, api_prefix):
    response = client.post(
        f"{api_prefix}/scheduled-exports",
        json={"name": "Bad", "module": "warehouses", "schedule": "often", "recipients": ["ops@example.com"]},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_schedule"


def test_templates(client, api_prefix):
    created = client.post(
        f"{api_prefix}/templates",
        json={
            "name": "Legacy ERP",
            "module": "warehouses",
            "columns": [
                {"key": "code", "source_column": "Code"},
                {"key": "name", "source_column": "Name"},
                {"key": "location", "source_column": "Site"},
            ],
            "is_default": True,
        },
    )
    assert created.status_code == 201
    template_id = created.json()["id"]

    module = client.get(f"{api_prefix}/templates/warehouses").json()
    assert module["templates"][0]["name"] == "Legacy ERP"

    renamed = client.put(f"{api_prefix}/templates/{template_id}", json={"name": "Old ERP"}).json()
    assert renamed["name"] == "Old ERP"

    assert client.delete(f"{api_prefix}/templates/{template_id}").json() == {"status": "deleted"}


def test_sample_csv(client, api_prefix):
    response = client.get(f"{api_prefix}/templates/warehouses/sample")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.content.startswith(b"code,name,location,description,isActive\n")
