"""
Export job endpoints: start, preview, progress and artifact download.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from bulkio.core.database import get_db
from bulkio.schemas.export import (
    ExportCreate,
    ExportJobListResponse,
    ExportJobResponse,
    ExportPreviewRequest,
    ExportPreviewResponse,
)
from bulkio.services.export_service import ExportService

router = APIRouter()


@router.post("/exports", response_model=ExportJobResponse, status_code=202)
def create_export(export_data: ExportCreate, db: Session = Depends(get_db)):
    """Start an export; poll ``GET /exports/{id}`` and download once completed."""
    service = ExportService(db)
    job = service.start_export(**export_data.model_dump())
    response = ExportJobResponse.model_validate(job)
    service.submit_job(job.id)
    return response


@router.post("/exports/preview", response_model=ExportPreviewResponse)
def preview_export(preview_data: ExportPreviewRequest, db: Session = Depends(get_db)):
    return ExportService(db).preview(**preview_data.model_dump())


@router.get("/exports", response_model=ExportJobListResponse)
async def list_exports(
    created_by: Optional[str] = None,
    db: Session = Depends(get_db),
):
    jobs = ExportService(db).list_jobs(created_by=created_by)
    return {"jobs": jobs, "total": len(jobs)}


@router.get("/exports/{job_id}", response_model=ExportJobResponse)
async def get_export(job_id: int, db: Session = Depends(get_db)):
    return ExportService(db).get_job(job_id)


@router.get("/exports/{job_id}/download")
async def download_export(job_id: int, db: Session = Depends(get_db)):
    """Stream the CSV artifact of a completed export."""
    service = ExportService(db)
    path = service.artifact(job_id)
    job = service.get_job(job_id)
    return FileResponse(path, media_type="text/csv", filename=job.file_name)
