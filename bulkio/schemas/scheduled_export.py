from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional, Dict, Any
from bulkio.models.scheduled_export import RunStatus


class ScheduledExportCreate(BaseModel):
    name: str
    module: str
    schedule: str  # daily, weekly, monthly or a 5-field cron expression
    recipients: List[str]
    filters: Optional[Dict[str, Any]] = None
    columns: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None
    format: str = "csv"
    is_active: bool = True
    created_by: Optional[str] = None


class ScheduledExportUpdate(BaseModel):
    name: Optional[str] = None
    schedule: Optional[str] = None
    recipients: Optional[List[str]] = None
    filters: Optional[Dict[str, Any]] = None
    columns: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None
    format: Optional[str] = None


class ScheduledExportActiveUpdate(BaseModel):
    is_active: bool


class ScheduledExportResponse(BaseModel):
    id: int
    name: str
    module: str
    schedule: str
    recipients: List[str]
    filters: Optional[Dict[str, Any]] = None
    columns: List[str]
    context: Optional[Dict[str, Any]] = None
    format: str
    is_active: bool
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ScheduledExportListResponse(BaseModel):
    schedules: List[ScheduledExportResponse]
    total: int


class ScheduledExportRunResponse(BaseModel):
    id: int
    scheduled_export_id: int
    export_job_id: Optional[int] = None
    status: RunStatus
    error_message: Optional[str] = None
    delivery_error: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ScheduledExportRunListResponse(BaseModel):
    runs: List[ScheduledExportRunResponse]
    total: int
