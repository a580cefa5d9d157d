"""
Scheduled export endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bulkio.core.database import get_db
from bulkio.schemas.scheduled_export import (
    ScheduledExportActiveUpdate,
    ScheduledExportCreate,
    ScheduledExportListResponse,
    ScheduledExportResponse,
    ScheduledExportRunListResponse,
    ScheduledExportRunResponse,
    ScheduledExportUpdate,
)
from bulkio.services.scheduler_service import ScheduledExportService

router = APIRouter()


@router.post("/scheduled-exports", response_model=ScheduledExportResponse, status_code=201)
async def create_scheduled_export(data: ScheduledExportCreate, db: Session = Depends(get_db)):
    return ScheduledExportService(db).create(**data.model_dump())


@router.get("/scheduled-exports", response_model=ScheduledExportListResponse)
async def list_scheduled_exports(
    created_by: Optional[str] = None,
    db: Session = Depends(get_db),
):
    schedules = ScheduledExportService(db).list_schedules(created_by=created_by)
    return {"schedules": schedules, "total": len(schedules)}


@router.get("/scheduled-exports/{schedule_id}", response_model=ScheduledExportResponse)
async def get_scheduled_export(schedule_id: int, db: Session = Depends(get_db)):
    return ScheduledExportService(db).get(schedule_id)


@router.patch("/scheduled-exports/{schedule_id}", response_model=ScheduledExportResponse)
async def update_scheduled_export(
    schedule_id: int,
    data: ScheduledExportUpdate,
    db: Session = Depends(get_db),
):
    """Edit a schedule; next_run_at is recomputed from now."""
    return ScheduledExportService(db).update(schedule_id, **data.model_dump(exclude_unset=True))


@router.patch("/scheduled-exports/{schedule_id}/active", response_model=ScheduledExportResponse)
async def set_scheduled_export_active(
    schedule_id: int,
    data: ScheduledExportActiveUpdate,
    db: Session = Depends(get_db),
):
    return ScheduledExportService(db).set_active(schedule_id, data.is_active)


@router.post("/scheduled-exports/{schedule_id}/run", response_model=ScheduledExportRunResponse)
def run_scheduled_export(schedule_id: int, db: Session = Depends(get_db)):
    """Run a schedule immediately. 409 while another run of it is in flight."""
    return ScheduledExportService(db).run_now(schedule_id)


@router.get("/scheduled-exports/{schedule_id}/runs", response_model=ScheduledExportRunListResponse)
async def list_scheduled_export_runs(schedule_id: int, db: Session = Depends(get_db)):
    """Run history, newest first."""
    runs = ScheduledExportService(db).list_runs(schedule_id)
    return {"runs": runs, "total": len(runs)}
