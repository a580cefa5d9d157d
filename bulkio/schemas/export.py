from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional, Dict, Any
from bulkio.models.export_job import ExportStatus


class ExportCreate(BaseModel):
    module: str
    filters: Optional[Dict[str, Any]] = None
    columns: Optional[List[str]] = None  # Canonical keys; module defaults when omitted
    context: Optional[Dict[str, Any]] = None
    file_name: Optional[str] = None
    created_by: Optional[str] = None


class ExportPreviewRequest(BaseModel):
    module: str
    filters: Optional[Dict[str, Any]] = None
    columns: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None
    limit: Optional[int] = Field(default=None, ge=1)


class ExportPreviewResponse(BaseModel):
    module: str
    columns: List[str]
    headers: List[str]
    rows: List[List[str]]


class ExportJobResponse(BaseModel):
    id: int
    module: str
    status: ExportStatus
    filters: Optional[Dict[str, Any]] = None
    columns: List[str]
    context: Optional[Dict[str, Any]] = None
    total_rows: int = 0
    file_name: str
    error_message: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExportJobListResponse(BaseModel):
    jobs: List[ExportJobResponse]
    total: int
