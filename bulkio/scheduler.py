"""
Background scheduler.

APScheduler BackgroundScheduler driving the scheduled-export tick, stuck-job
recovery and the drain of undispatched PENDING jobs. Jobs are registered and started on FastAPI startup.
"""
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI

from bulkio.core.config import settings
from bulkio.core.database import SessionLocal

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> BackgroundScheduler:
    """
    Get the scheduler instance.

    Raises:
        RuntimeError: If scheduler not initialized
    """
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")
    return _scheduler


# =============================================================================
# Jobs
# =============================================================================


def scheduled_exports_tick_job() -> None:
    """
    Run every due scheduled export.

    Failures of individual schedules are recorded as runs; this wrapper only
    guards the scheduler thread against unexpected errors.
    """
    from bulkio.services.scheduler_service import ScheduledExportService

    db = SessionLocal()
    try:
        runs = ScheduledExportService(db).tick()
        if runs:
            logger.info(f"Scheduled export tick: {len(runs)} run(s)")
    except Exception as e:
        logger.exception(f"Scheduled export tick failed: {e}")
    finally:
        db.close()


def stuck_import_recovery_job() -> None:
    """Re-queue imports whose worker stopped mid-run."""
    from bulkio.services.job_tasks import recover_stuck_imports

    try:
        recover_stuck_imports()
    except Exception as e:
        logger.exception(f"Stuck import recovery failed: {e}")


def stuck_export_recovery_job() -> None:
    """Re-queue exports whose worker stopped mid-write."""
    from bulkio.services.job_tasks import recover_stuck_exports

    try:
        recover_stuck_exports()
    except Exception as e:
        logger.exception(f"Stuck export recovery failed: {e}")


def pending_jobs_drain_job() -> None:
    """Run import and export jobs left PENDING without a dispatch."""
    from bulkio.services.job_tasks import drain_pending_exports, drain_pending_imports

    for drain in (drain_pending_imports, drain_pending_exports):
        try:
            result = drain(older_than_minutes=settings.PENDING_DRAIN_MINUTES)
            if result["processed"]:
                logger.info(f"{drain.name}: processed {result['processed']}")
        except Exception as e:
            logger.exception(f"{drain.name} failed: {e}")


def init_scheduler(app: FastAPI) -> BackgroundScheduler:
    """
    Initialize the scheduler and register jobs.

    Args:
        app: FastAPI application instance

    Returns:
        The configured scheduler
    """
    global _scheduler

    logger.info("Initializing job scheduler...")

    _scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Only one instance of each job at a time
            "misfire_grace_time": 60,
        },
    )

    _register_jobs(_scheduler)

    @app.on_event("startup")
    async def start_scheduler() -> None:
        logger.info("Starting job scheduler...")
        _scheduler.start()
        for job in _scheduler.get_jobs():
            logger.info(f"  - {job.id}: {job.trigger}")

    @app.on_event("shutdown")
    async def stop_scheduler() -> None:
        logger.info("Stopping job scheduler...")
        _scheduler.shutdown(wait=False)

    return _scheduler


def _register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        scheduled_exports_tick_job,
        trigger=IntervalTrigger(seconds=settings.SCHEDULER_TICK_SECONDS),
        id="scheduled_exports_tick",
        name="Scheduled Exports Tick",
        replace_existing=True,
    )

    scheduler.add_job(
        stuck_import_recovery_job,
        trigger=IntervalTrigger(minutes=5),
        id="stuck_import_recovery",
        name="Stuck Import Recovery",
        replace_existing=True,
    )

    scheduler.add_job(
        stuck_export_recovery_job,
        trigger=IntervalTrigger(minutes=5),
        id="stuck_export_recovery",
        name="Stuck Export Recovery",
        replace_existing=True,
    )

    scheduler.add_job(
        pending_jobs_drain_job,
        trigger=IntervalTrigger(minutes=5),
        id="pending_jobs_drain",
        name="Pending Jobs Drain",
        replace_existing=True,
    )
