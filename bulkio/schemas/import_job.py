from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional, Dict, Any
from bulkio.models.import_job import ImportStatus, DuplicateStrategy, RowErrorReason, AuditOperation


class MappingEntry(BaseModel):
    key: str
    source_column: Optional[str] = None
    required: bool = False


class SuggestedMapping(MappingEntry):
    header: str
    type: str
    enum_values: Optional[List[str]] = None


class PreviewRow(BaseModel):
    row_number: int
    data: Dict[str, Any]


class ImportPreviewResponse(BaseModel):
    module: str
    headers: List[str]
    total_rows: int
    suggested_mapping: List[SuggestedMapping]
    missing_required: List[str]
    rows: List[PreviewRow]


class ImportJobResponse(BaseModel):
    id: int
    batch_id: Optional[int] = None
    module: str
    original_filename: str
    status: ImportStatus
    duplicate_strategy: DuplicateStrategy
    total_rows: int = 0
    processed_rows: int = 0
    success_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    column_mapping: List[MappingEntry]
    context: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    reverted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ImportJobListResponse(BaseModel):
    jobs: List[ImportJobResponse]
    total: int


class RowErrorResponse(BaseModel):
    id: int
    row_number: int
    reason: RowErrorReason
    message: str
    raw_values: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class RowErrorListResponse(BaseModel):
    items: List[RowErrorResponse]
    total: int
    skip: int
    limit: int


class AuditEntryResponse(BaseModel):
    id: int
    row_number: int
    operation: AuditOperation
    record_id: str
    previous_snapshot: Optional[Dict[str, Any]] = None
    created_at: datetime
    reverted_at: Optional[datetime] = None
    compensation_error: Optional[str] = None

    class Config:
        from_attributes = True


class AuditListResponse(BaseModel):
    entries: List[AuditEntryResponse]
    total: int


class RollbackReportResponse(BaseModel):
    job_id: int
    reverted: int
    skipped: int
    failed: int
    already_reverted: bool
    errors: List[Dict[str, Any]] = []

    class Config:
        from_attributes = True


class ImportBatchResponse(BaseModel):
    id: int
    status: ImportStatus
    total_jobs: int
    completed_jobs: int
    failed_jobs: int
    created_by: Optional[str] = None
    created_at: datetime
    jobs: List[ImportJobResponse]
