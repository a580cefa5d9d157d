"""
Tests for the background scheduler's job registrations and job bodies.
"""
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from bulkio.core.timeutil import utcnow
from bulkio.models.export_job import ExportStatus
from bulkio.models.import_job import ImportStatus
from bulkio.scheduler import _register_jobs, pending_jobs_drain_job, stuck_export_recovery_job
from bulkio.services.export_service import ExportService
from bulkio.services.import_service import ImportService


def test_registered_jobs():
    scheduler = BackgroundScheduler(timezone="UTC")
    _register_jobs(scheduler)

    assert {job.id for job in scheduler.get_jobs()} == {
        "scheduled_exports_tick",
        "stuck_import_recovery",
        "stuck_export_recovery",
        "pending_jobs_drain",
    }


def test_stuck_export_recovery_reruns_export(db, registry_loader):
    exports = ExportService(db, loader=registry_loader)
    job = exports.start_export(module="warehouses")
    job.status = ExportStatus.PROCESSING
    job.started_at = utcnow() - timedelta(hours=2)
    db.commit()

    stuck_export_recovery_job()

    db.refresh(job)
    assert job.status == ExportStatus.COMPLETED
    assert job.artifact_path


def test_pending_jobs_drain_runs_only_orphans(db, registry_loader, make_csv):
    imports = ImportService(db, loader=registry_loader)
    exports = ExportService(db, loader=registry_loader)
    orphan_import = imports.create_job("warehouses", make_csv("code,name,location", "WH-1,A,X"), "w.csv")
    fresh_import = imports.create_job("warehouses", make_csv("code,name,location", "WH-2,B,Y"), "w.csv")
    orphan_export = exports.start_export(module="warehouses")
    fresh_export = exports.start_export(module="warehouses")
    orphan_import.created_at = utcnow() - timedelta(hours=1)
    orphan_export.created_at = utcnow() - timedelta(hours=1)
    db.commit()

    pending_jobs_drain_job()

    for job in (orphan_import, fresh_import, orphan_export, fresh_export):
        db.refresh(job)
    assert orphan_import.status == ImportStatus.COMPLETED
    assert fresh_import.status == ImportStatus.PENDING
    assert orphan_export.status == ExportStatus.COMPLETED
    assert fresh_export.status == ExportStatus.PENDING
