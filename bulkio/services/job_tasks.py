"""
Celery tasks for running import and export jobs.

Each task opens its own session, so the same callable serves the inline,
thread and Celery runners.
"""
import logging
from typing import Optional

from bulkio.core.celery_app import celery_app
from bulkio.core.database import SessionLocal
from bulkio.services.export_service import ExportService
from bulkio.services.import_service import ImportService

logger = logging.getLogger(__name__)


@celery_app.task(name="run_import_job")
def run_import_job(job_id: int):
    """
    Execute an import job.

    Args:
        job_id: ID of the PENDING import job
    """
    db = SessionLocal()
    try:
        job = ImportService(db).process_job(job_id)
        if job is None:
            return {"error": "Import job not found", "job_id": job_id}
        return {
            "job_id": job_id,
            "status": job.status.value,
            "processed_rows": job.processed_rows,
            "error_rows": job.error_rows,
        }
    finally:
        db.close()


@celery_app.task(name="run_export_job")
def run_export_job(job_id: int):
    """
    Execute an export job.

    Args:
        job_id: ID of the PENDING export job
    """
    db = SessionLocal()
    try:
        job = ExportService(db).process_job(job_id)
        if job is None:
            return {"error": "Export job not found", "job_id": job_id}
        return {"job_id": job_id, "status": job.status.value, "total_rows": job.total_rows}
    finally:
        db.close()


@celery_app.task(name="recover_stuck_imports")
def recover_stuck_imports():
    """Re-queue import jobs whose worker died mid-run and dispatch them again."""
    from bulkio.core.task_runner import get_task_runner

    db = SessionLocal()
    try:
        recovered = ImportService(db).recover_stuck()
    finally:
        db.close()

    runner = get_task_runner()
    for job_id in recovered:
        runner.submit(run_import_job, job_id)
    return {"recovered": recovered}


@celery_app.task(name="drain_pending_imports")
def drain_pending_imports(limit: int = 10, older_than_minutes: Optional[int] = None):
    """Process PENDING imports that were never dispatched (e.g. the API died after creating them)."""
    db = SessionLocal()
    try:
        return {"processed": ImportService(db).process_pending(limit, older_than_minutes)}
    finally:
        db.close()


@celery_app.task(name="recover_stuck_exports")
def recover_stuck_exports():
    """Re-queue exports whose worker died mid-write and dispatch them again."""
    from bulkio.core.task_runner import get_task_runner

    db = SessionLocal()
    try:
        recovered = ExportService(db).recover_stuck()
    finally:
        db.close()

    runner = get_task_runner()
    for job_id in recovered:
        runner.submit(run_export_job, job_id)
    return {"recovered": recovered}


@celery_app.task(name="drain_pending_exports")
def drain_pending_exports(limit: int = 10, older_than_minutes: Optional[int] = None):
    """Process PENDING exports that were never dispatched."""
    db = SessionLocal()
    try:
        return {"processed": ExportService(db).process_pending(limit, older_than_minutes)}
    finally:
        db.close()
