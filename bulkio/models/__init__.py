from bulkio.models.import_job import (
    ImportBatch, ImportJob, ImportRowError, ImportAuditEntry,
    ImportStatus, DuplicateStrategy, RowErrorReason, AuditOperation,
)
from bulkio.models.export_job import ExportJob, ExportStatus
from bulkio.models.scheduled_export import ScheduledExport, ScheduledExportRun, RunStatus
from bulkio.models.template import ImportTemplate
from bulkio.models.erp import Warehouse, StockItem, Supplier, Employee, Project, ProjectTask, Asset

__all__ = [
    "ImportBatch", "ImportJob", "ImportRowError", "ImportAuditEntry",
    "ImportStatus", "DuplicateStrategy", "RowErrorReason", "AuditOperation",
    "ExportJob", "ExportStatus",
    "ScheduledExport", "ScheduledExportRun", "RunStatus",
    "ImportTemplate",
    "Warehouse", "StockItem", "Supplier", "Employee", "Project", "ProjectTask", "Asset",
]
