"""
Import job endpoints: preview, create, batches, progress, row errors, audit, cancel and rollback.
"""
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from bulkio.core.database import get_db
from bulkio.models.import_job import DuplicateStrategy
from bulkio.schemas.import_job import (
    AuditListResponse,
    ImportBatchResponse,
    ImportJobListResponse,
    ImportJobResponse,
    ImportPreviewResponse,
    RollbackReportResponse,
    RowErrorListResponse,
)
from bulkio.services.import_service import ImportService
from bulkio.services.rollback_service import RollbackService

router = APIRouter()


def _json_form(value: Optional[str], name: str):
    if value is None or not value.strip():
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON in '{name}': {e}")


@router.post("/imports/preview", response_model=ImportPreviewResponse)
def preview_import(
    module: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """Headers, suggested mapping and the first rows of a file, without creating a job."""
    content = file.file.read()
    return ImportService(db).preview(module, content)


@router.post("/imports", response_model=ImportJobResponse, status_code=202)
def create_import(
    module: str = Form(...),
    file: UploadFile = File(...),
    mapping: Optional[str] = Form(None),
    duplicate_strategy: DuplicateStrategy = Form(DuplicateStrategy.ERROR),
    context: Optional[str] = Form(None),
    created_by: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """
    Create an import job and hand it to the worker.

    ``mapping`` and ``context`` are JSON strings. The job is returned as
    created; poll ``GET /imports/{id}`` for progress.
    """
    content = file.file.read()
    service = ImportService(db)
    job = service.create_job(
        module=module,
        content=content,
        original_filename=file.filename or "upload.csv",
        mapping=_json_form(mapping, "mapping"),
        duplicate_strategy=duplicate_strategy,
        context=_json_form(context, "context"),
        created_by=created_by,
    )
    response = ImportJobResponse.model_validate(job)
    service.submit_job(job.id)
    return response


@router.post("/imports/batch", response_model=ImportBatchResponse, status_code=202)
def create_import_batch(
    files: List[UploadFile] = File(...),
    entries: str = Form(...),
    created_by: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """
    Create one import job per file and hand each to the worker.

    ``entries`` is a JSON list with one ``{module, mapping, duplicate_strategy,
    context}`` object per file, in upload order.
    """
    uploads = [(f.file.read(), f.filename or "upload.csv") for f in files]
    service = ImportService(db)
    batch = service.create_batch(uploads, _json_form(entries, "entries"), created_by=created_by)
    response = ImportBatchResponse.model_validate(service.get_batch(batch.id))
    for job in response.jobs:
        service.submit_job(job.id)
    return response


@router.get("/imports/batch/{batch_id}", response_model=ImportBatchResponse)
def get_import_batch(batch_id: int, db: Session = Depends(get_db)):
    """A batch's jobs and how many of them have finished or failed."""
    return ImportService(db).get_batch(batch_id)


@router.get("/imports", response_model=ImportJobListResponse)
async def list_imports(
    created_by: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Most recent import jobs, newest first."""
    jobs = ImportService(db).list_jobs(created_by=created_by)
    return {"jobs": jobs, "total": len(jobs)}


@router.get("/imports/{job_id}", response_model=ImportJobResponse)
async def get_import(job_id: int, db: Session = Depends(get_db)):
    return ImportService(db).get_job(job_id)


@router.get("/imports/{job_id}/errors", response_model=RowErrorListResponse)
async def list_import_errors(
    job_id: int,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """Row errors in row order, paginated."""
    limit = max(1, min(limit, 1000))
    total, items = ImportService(db).list_errors(job_id, skip=max(0, skip), limit=limit)
    return {"items": items, "total": total, "skip": skip, "limit": limit}


@router.get("/imports/{job_id}/audit", response_model=AuditListResponse)
async def list_import_audit(job_id: int, db: Session = Depends(get_db)):
    entries = ImportService(db).list_audit(job_id)
    return {"entries": entries, "total": len(entries)}


@router.post("/imports/{job_id}/cancel", response_model=ImportJobResponse)
def cancel_import(job_id: int, db: Session = Depends(get_db)):
    """Request cancellation; a running job stops before its next row."""
    return ImportService(db).cancel(job_id)


@router.post("/imports/{job_id}/rollback", response_model=RollbackReportResponse)
def rollback_import(job_id: int, db: Session = Depends(get_db)):
    """Undo a finished import from its audit trail."""
    return RollbackService(db).rollback(job_id)
