"""
Integration tests for the import endpoints.
"""
import json

import pytest

from bulkio.services.import_service import ImportService

pytestmark = pytest.mark.api

WAREHOUSES_CSV = b"code,name,location\nWH-1,Main,Tarkwa\nWH-2,,Accra\nWH-3,Third,Kumasi\n"


def _upload(content, name="warehouses.csv"):
    return {"file": (name, content, "text/csv")}


def test_preview(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports/preview",
        data={"module": "warehouses"},
        files=_upload(WAREHOUSES_CSV),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["headers"] == ["code", "name", "location"]
    assert body["total_rows"] == 3
    assert body["missing_required"] == []


def test_import_lifecycle(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports",
        data={"module": "warehouses", "duplicate_strategy": "error", "created_by": "ops"},
        files=_upload(WAREHOUSES_CSV),
    )
    assert response.status_code == 202
    job_id = response.json()["id"]

    job = client.get(f"{api_prefix}/imports/{job_id}").json()
    assert job["status"] == "COMPLETED"
    assert (job["success_rows"], job["error_rows"], job["skipped_rows"]) == (2, 1, 0)

    errors = client.get(f"{api_prefix}/imports/{job_id}/errors").json()
    assert errors["total"] == 1
    assert errors["items"][0]["row_number"] == 2
    assert errors["items"][0]["reason"] == "validation"

    audit = client.get(f"{api_prefix}/imports/{job_id}/audit").json()
    assert [e["operation"] for e in audit["entries"]] == ["create", "create"]

    listing = client.get(f"{api_prefix}/imports", params={"created_by": "ops"}).json()
    assert [j["id"] for j in listing["jobs"]] == [job_id]

    report = client.post(f"{api_prefix}/imports/{job_id}/rollback").json()
    assert report["reverted"] == 2
    assert report["already_reverted"] is False

    again = client.post(f"{api_prefix}/imports/{job_id}/rollback").json()
    assert again["already_reverted"] is True


def test_explicit_mapping_and_context(client, api_prefix):
    client.post(
        f"{api_prefix}/imports",
        data={"module": "warehouses"},
        files=_upload(b"code,name,location\nWH-1,Main,Tarkwa\n"),
    )
    response = client.post(
        f"{api_prefix}/imports",
        data={
            "module": "inventory",
            "mapping": json.dumps({"item_code": "SKU", "name": "Item", "category": "Cat", "unit": "UoM"}),
            "context": json.dumps({"warehouse_code": "WH-1"}),
        },
        files=_upload(b"SKU,Item,Cat,UoM\nSKU-1,Helmet,tools,pieces\n"),
    )
    assert response.status_code == 202
    job = client.get(f"{api_prefix}/imports/{response.json()['id']}").json()
    assert job["success_rows"] == 1
    assert job["context"] == {"warehouse_code": "WH-1"}


def test_missing_required_mapping(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports",
        data={"module": "warehouses"},
        files=_upload(b"code,name\nWH-1,Main\n"),
    )
    assert response.status_code == 400
    assert response.json()["missing_keys"] == ["location"]


def test_invalid_json_mapping(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports",
        data={"module": "warehouses", "mapping": "{not json"},
        files=_upload(WAREHOUSES_CSV),
    )
    assert response.status_code == 400


def test_unsupported_module(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports",
        data={"module": "payroll"},
        files=_upload(WAREHOUSES_CSV),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_module"


def test_bad_duplicate_strategy(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports",
        data={"module": "warehouses", "duplicate_strategy": "merge"},
        files=_upload(WAREHOUSES_CSV),
    )
    assert response.status_code == 422


def test_unknown_job(client, api_prefix):
    assert client.get(f"{api_prefix}/imports/999").status_code == 404
    assert client.post(f"{api_prefix}/imports/999/rollback").status_code == 404


def test_rollback_of_queued_job_conflicts(client, api_prefix, db, registry_loader):
    job = ImportService(db, loader=registry_loader).create_job(
        "warehouses", WAREHOUSES_CSV, "queued.csv"
    )
    response = client.post(f"{api_prefix}/imports/{job.id}/rollback")
    assert response.status_code == 409

    cancelled = client.post(f"{api_prefix}/imports/{job.id}/cancel").json()
    assert cancelled["status"] == "CANCELLED"
    assert client.post(f"{api_prefix}/imports/{job.id}/rollback").status_code == 200


def test_batch_import(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports/batch",
        data={
            "entries": json.dumps([
                {"module": "warehouses"},
                {"module": "warehouses", "duplicate_strategy": "skip"},
            ]),
            "created_by": "ops",
        },
        files=[
            ("files", ("first.csv", b"code,name,location\nWH-1,Main,Tarkwa\n", "text/csv")),
            ("files", ("second.csv", b"code,name,location\nWH-1,Again,Accra\nWH-2,North,Kumasi\n", "text/csv")),
        ],
    )
    assert response.status_code == 202
    created = response.json()
    assert created["total_jobs"] == 2
    assert [j["original_filename"] for j in created["jobs"]] == ["first.csv", "second.csv"]

    batch = client.get(f"{api_prefix}/imports/batch/{created['id']}").json()
    assert batch["status"] == "COMPLETED"
    assert (batch["completed_jobs"], batch["failed_jobs"]) == (2, 0)
    assert batch["jobs"][1]["skipped_rows"] == 1
    assert all(j["batch_id"] == created["id"] for j in batch["jobs"])


def test_batch_entries_must_match_files(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports/batch",
        data={"entries": json.dumps([{"module": "warehouses"}, {"module": "warehouses"}])},
        files=[("files", ("only.csv", WAREHOUSES_CSV, "text/csv"))],
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_batch"


def test_batch_entry_missing_mapping(client, api_prefix):
    response = client.post(
        f"{api_prefix}/imports/batch",
        data={"entries": json.dumps([{"module": "warehouses"}])},
        files=[("files", ("w.csv", b"code,name\nWH-1,Main\n", "text/csv"))],
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_batch"
    assert body["missing_keys"] == ["location"]


def test_unknown_batch(client, api_prefix):
    assert client.get(f"{api_prefix}/imports/batch/999").status_code == 404
