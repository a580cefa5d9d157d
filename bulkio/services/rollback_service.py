"""
Rollback engine - compensates an import job's effects from its audit trail.

Entries are walked newest-first. Each compensation commits on its own, so
a failing entry is recorded and the walk continues. Entry-level
``reverted_at`` markers make re-runs touch only what is still pending; the
job-level ``reverted_at`` is set once nothing is left.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from bulkio.adapters.modules import get_module_adapter
from bulkio.core.exceptions import InvalidJobStateError, JobNotFoundError, RollbackCompensationError
from bulkio.core.timeutil import utcnow
from bulkio.models.import_job import (
    AuditOperation,
    ImportAuditEntry,
    ImportJob,
    TERMINAL_IMPORT_STATUSES,
)
from bulkio.ports.module_adapter import ModuleAdapter
from bulkio.registry.loader import RegistryLoader, get_registry_loader

logger = logging.getLogger(__name__)


@dataclass
class RollbackReport:
    job_id: int
    reverted: int = 0
    skipped: int = 0
    failed: int = 0
    already_reverted: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)


class RollbackService:
    def __init__(self, db: Session, loader: Optional[RegistryLoader] = None):
        self.db = db
        self.loader = loader or get_registry_loader()

    def rollback(self, job_id: int) -> RollbackReport:
        """
        Undo a finished import.

        Raises:
            JobNotFoundError: Unknown job
            InvalidJobStateError: Job still queued or running
            AdapterUnavailableError: The module's store cannot be reached
        """
        job = self.db.get(ImportJob, job_id)
        if not job:
            raise JobNotFoundError("Import job", job_id)

        if job.status not in TERMINAL_IMPORT_STATUSES or job.completed_at is None:
            raise InvalidJobStateError(
                f"Import job {job_id} cannot be rolled back while {job.status.value}",
                status=job.status.value,
            )

        report = RollbackReport(job_id=job_id)
        if job.reverted_at is not None:
            report.already_reverted = True
            logger.info(f"Import job {job_id} already rolled back at {job.reverted_at}")
            return report

        adapter = get_module_adapter(job.module, self.db, job.context, loader=self.loader)
        adapter.check_ready()

        pending = (
            self.db.query(ImportAuditEntry)
            .filter(ImportAuditEntry.job_id == job_id, ImportAuditEntry.reverted_at.is_(None))
            .order_by(ImportAuditEntry.id.desc())
            .all()
        )
        logger.info(f"Rolling back import job {job_id}: {len(pending)} audit entries")

        for entry in pending:
            try:
                self._compensate(adapter, entry)
                entry.reverted_at = utcnow()
                entry.compensation_error = None
                self.db.commit()
                if entry.operation == AuditOperation.SKIP:
                    report.skipped += 1
                else:
                    report.reverted += 1
            except Exception as e:
                self.db.rollback()
                error = e if isinstance(e, RollbackCompensationError) else RollbackCompensationError(entry.id, str(e))
                entry.compensation_error = str(error)
                self.db.commit()
                report.failed += 1
                report.errors.append({
                    "entry_id": entry.id,
                    "row_number": entry.row_number,
                    "record_id": entry.record_id,
                    "message": str(error),
                })
                logger.warning(f"Rollback of job {job_id} entry {entry.id} failed: {error}")

        remaining = (
            self.db.query(ImportAuditEntry)
            .filter(ImportAuditEntry.job_id == job_id, ImportAuditEntry.reverted_at.is_(None))
            .count()
        )
        if remaining == 0:
            job.reverted_at = utcnow()
            self.db.commit()

        logger.info(
            f"Rollback of import job {job_id} done: {report.reverted} reverted, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report

    def _compensate(self, adapter: ModuleAdapter, entry: ImportAuditEntry) -> None:
        if entry.operation == AuditOperation.CREATE:
            if not adapter.delete_record(entry.record_id):
                logger.debug(f"Record {entry.record_id} already gone; treating as reverted")
        elif entry.operation == AuditOperation.UPDATE:
            if entry.previous_snapshot is None:
                raise RollbackCompensationError(entry.id, "Update entry has no previous snapshot")
            adapter.update_record(entry.record_id, entry.previous_snapshot)
        # skip entries have nothing to undo
