"""
Scheduled exports - definitions, run history and the periodic tick.

Each tick picks active schedules whose next_run_at has passed (oldest
first, bounded batch), runs the export in the caller and records the
outcome as a ScheduledExportRun. Successful artifacts are mailed to the
recipients; a delivery failure is noted on the run without changing its
status. next_run_at always moves strictly past the tick time.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import threading

from sqlalchemy.orm import Session

from bulkio.core.config import settings
from bulkio.core.exceptions import (
    InvalidJobStateError,
    InvalidScheduleError,
    JobNotFoundError,
    ScheduleExecutionError,
)
from bulkio.core.schedule import next_run_at, normalize_recipients, resolve_cron
from bulkio.core.timeutil import utcnow
from bulkio.models.export_job import ExportJob, ExportStatus
from bulkio.models.scheduled_export import RunStatus, ScheduledExport, ScheduledExportRun
from bulkio.ports.mail import MailAttachment, MailSender
from bulkio.registry.loader import RegistryLoader, get_registry_loader
from bulkio.services.export_service import ExportService

logger = logging.getLogger(__name__)

RUN_HISTORY_LIMIT = 50
SUPPORTED_FORMATS = ("csv",)

# Schedules with a run in flight in this process
_in_flight: set = set()
_in_flight_lock = threading.Lock()


def _acquire(schedule_id: int) -> bool:
    with _in_flight_lock:
        if schedule_id in _in_flight:
            return False
        _in_flight.add(schedule_id)
        return True


def _release(schedule_id: int) -> None:
    with _in_flight_lock:
        _in_flight.discard(schedule_id)


class ScheduledExportService:
    def __init__(
        self,
        db: Session,
        mail_sender: Optional[MailSender] = None,
        loader: Optional[RegistryLoader] = None,
    ):
        self.db = db
        self.loader = loader or get_registry_loader()
        self._mail_sender = mail_sender

    @property
    def mail_sender(self) -> MailSender:
        if self._mail_sender is None:
            from bulkio.adapters.mail_sendgrid import SendGridMailSender
            self._mail_sender = SendGridMailSender()
        return self._mail_sender

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _validate_definition(
        self,
        module: str,
        filters: Optional[Dict[str, Any]],
        columns: Optional[List[str]],
        context: Optional[Dict[str, Any]],
        format: str,
    ) -> List[str]:
        if format not in SUPPORTED_FORMATS:
            raise InvalidScheduleError(f"Unsupported format: {format}")

        exports = ExportService(self.db, loader=self.loader)
        spec = self.loader.get_module(module)
        resolved_columns = exports._resolve_columns(spec, columns)
        exports._check_filters(spec, filters)

        from bulkio.adapters.modules import get_module_adapter
        get_module_adapter(module, self.db, context, loader=self.loader).check_context(resolved_columns)
        return resolved_columns

    def create(
        self,
        name: str,
        module: str,
        schedule: str,
        recipients: List[str],
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        format: str = "csv",
        is_active: bool = True,
        created_by: Optional[str] = None,
    ) -> ScheduledExport:
        """
        Validate and persist a schedule with its first next_run_at.

        Raises:
            InvalidScheduleError: Bad schedule, recipients or format
            UnsupportedModuleError, InvalidQueryError, MissingContextError
        """
        if not name or not name.strip():
            raise InvalidScheduleError("Name is required")

        normalized_recipients = normalize_recipients(recipients)
        resolve_cron(schedule)
        resolved_columns = self._validate_definition(module, filters, columns, context, format)
        now = utcnow()

        scheduled = ScheduledExport(
            name=name.strip(),
            module=module,
            filters=filters or None,
            columns=resolved_columns,
            context=context or None,
            schedule=schedule.strip(),
            recipients=normalized_recipients,
            format=format,
            is_active=is_active,
            next_run_at=next_run_at(schedule, now),
            created_by=created_by,
        )
        self.db.add(scheduled)
        self.db.commit()
        self.db.refresh(scheduled)

        logger.info(
            f"Created scheduled export {scheduled.id} '{scheduled.name}' ({scheduled.schedule}), "
            f"next run {scheduled.next_run_at}"
        )
        return scheduled

    def update(self, schedule_id: int, **changes) -> ScheduledExport:
        """Edit a schedule; next_run_at is recomputed from now."""
        scheduled = self.get(schedule_id)

        if "recipients" in changes and changes["recipients"] is not None:
            changes["recipients"] = normalize_recipients(changes["recipients"])
        if changes.get("schedule") is not None:
            resolve_cron(changes["schedule"])
            changes["schedule"] = changes["schedule"].strip()

        merged = {
            key: changes[key] if changes.get(key) is not None else getattr(scheduled, key)
            for key in ("module", "filters", "columns", "context", "format")
        }
        merged["columns"] = self._validate_definition(
            merged["module"], merged["filters"], merged["columns"], merged["context"], merged["format"]
        )

        for key, value in changes.items():
            if value is not None and key != "columns":
                setattr(scheduled, key, value)
        scheduled.columns = merged["columns"]
        scheduled.next_run_at = next_run_at(scheduled.schedule, utcnow())
        self.db.commit()
        self.db.refresh(scheduled)
        return scheduled

    def get(self, schedule_id: int) -> ScheduledExport:
        scheduled = self.db.get(ScheduledExport, schedule_id)
        if not scheduled:
            raise JobNotFoundError("Scheduled export", schedule_id)
        return scheduled

    def list_schedules(self, created_by: Optional[str] = None) -> List[ScheduledExport]:
        query = self.db.query(ScheduledExport)
        if created_by:
            query = query.filter(ScheduledExport.created_by == created_by)
        return query.order_by(ScheduledExport.created_at.desc(), ScheduledExport.id.desc()).all()

    def set_active(self, schedule_id: int, is_active: bool) -> ScheduledExport:
        """Soft enable/disable. Re-enabling recomputes next_run_at from now."""
        scheduled = self.get(schedule_id)
        scheduled.is_active = is_active
        if is_active:
            scheduled.next_run_at = next_run_at(scheduled.schedule, utcnow())
        self.db.commit()
        self.db.refresh(scheduled)
        logger.info(f"Scheduled export {schedule_id} {'activated' if is_active else 'deactivated'}")
        return scheduled

    def list_runs(self, schedule_id: int, limit: int = RUN_HISTORY_LIMIT) -> List[ScheduledExportRun]:
        self.get(schedule_id)
        return (
            self.db.query(ScheduledExportRun)
            .filter(ScheduledExportRun.scheduled_export_id == schedule_id)
            .order_by(ScheduledExportRun.created_at.desc(), ScheduledExportRun.id.desc())
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def due(self, now, limit: Optional[int] = None) -> List[ScheduledExport]:
        return (
            self.db.query(ScheduledExport)
            .filter(
                ScheduledExport.is_active.is_(True),
                ScheduledExport.next_run_at.isnot(None),
                ScheduledExport.next_run_at <= now,
            )
            .order_by(ScheduledExport.next_run_at, ScheduledExport.id)
            .limit(limit or settings.SCHEDULER_BATCH_SIZE)
            .all()
        )

    def tick(self, now=None) -> List[ScheduledExportRun]:
        """One scheduler pass. Schedules with a run already in flight are skipped."""
        now = now or utcnow()
        runs = []
        for scheduled in self.due(now):
            if not _acquire(scheduled.id):
                logger.info(f"Scheduled export {scheduled.id} still running, skipping this tick")
                continue
            try:
                runs.append(self.run_one(scheduled, now))
            finally:
                _release(scheduled.id)
        return runs

    def run_now(self, schedule_id: int) -> ScheduledExportRun:
        """
        Trigger a schedule outside the tick.

        Raises:
            InvalidJobStateError: A run of this schedule is already in flight
        """
        scheduled = self.get(schedule_id)
        if not _acquire(schedule_id):
            raise InvalidJobStateError(f"Scheduled export {schedule_id} is already running")
        try:
            return self.run_one(scheduled, utcnow())
        finally:
            _release(schedule_id)

    def run_one(self, scheduled: ScheduledExport, trigger_time) -> ScheduledExportRun:
        """Run one schedule now, record the run and advance next_run_at."""
        schedule_id = scheduled.id
        logger.info(f"Running scheduled export {schedule_id} '{scheduled.name}'")

        exports = ExportService(self.db, loader=self.loader)
        job: Optional[ExportJob] = None
        try:
            job = exports.start_export(
                module=scheduled.module,
                filters=scheduled.filters,
                columns=scheduled.columns,
                context=scheduled.context,
                file_name=scheduled.name,
                created_by=scheduled.created_by,
            )
            job = exports.process_job(job.id)
            if job.status != ExportStatus.COMPLETED:
                raise ScheduleExecutionError(job.error_message or f"Export job {job.id} {job.status.value}")
            run = ScheduledExportRun(
                scheduled_export_id=schedule_id,
                export_job_id=job.id,
                status=RunStatus.SUCCESS,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Scheduled export {schedule_id} run failed: {e}")
            run = ScheduledExportRun(
                scheduled_export_id=schedule_id,
                export_job_id=job.id if job is not None else None,
                status=RunStatus.FAILURE,
                error_message=str(e),
            )

        self.db.add(run)
        self.db.commit()

        if run.status == RunStatus.SUCCESS:
            self._deliver(scheduled, job, run)

        self._advance(scheduled, trigger_time)
        self.db.refresh(run)
        return run

    def _deliver(self, scheduled: ScheduledExport, job: ExportJob, run: ScheduledExportRun) -> None:
        try:
            content = Path(job.artifact_path).read_bytes()
            self.mail_sender.send(
                recipients=list(scheduled.recipients),
                subject=f"Scheduled export: {scheduled.name}",
                body=(
                    f"Attached is the scheduled {scheduled.module} export '{scheduled.name}' "
                    f"({job.total_rows} rows)."
                ),
                attachment=MailAttachment(filename=job.file_name, content=content),
            )
            run.delivered_at = utcnow()
        except Exception as e:
            logger.warning(f"Delivery of scheduled export {scheduled.id} failed: {e}")
            run.delivery_error = str(e)
        self.db.commit()

    def _advance(self, scheduled: ScheduledExport, trigger_time) -> None:
        scheduled.last_run_at = trigger_time
        try:
            scheduled.next_run_at = next_run_at(scheduled.schedule, max(trigger_time, utcnow()))
        except InvalidScheduleError as e:
            logger.error(f"Scheduled export {scheduled.id} deactivated: {e}")
            scheduled.is_active = False
            scheduled.next_run_at = None
        self.db.commit()
