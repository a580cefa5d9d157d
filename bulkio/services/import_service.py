"""
Import job engine.

Lifecycle: PENDING → VALIDATING → PROCESSING → COMPLETED | FAILED | CANCELLED

- Creation resolves the mapping and module context up front and stores the file.
- A worker claims the job (conditional PENDING → VALIDATING), parses the whole
  file once for structure, then applies rows in file order.
- Every row is its own transaction: the record write, its audit entry or row
  error, and the counter increments commit together.
- Cancellation is cooperative; the status is re-read between rows.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bulkio.adapters.modules import get_module_adapter
from bulkio.codec.csv_codec import CsvRow, count_rows, parse, parse_file
from bulkio.core.config import settings
from bulkio.core.exceptions import (
    AdapterFailure,
    AdapterUnavailableError,
    BulkIOError,
    DuplicateError,
    InvalidBatchError,
    JobNotFoundError,
    RowError,
    StructuralParseError,
)
from bulkio.core.storage import save_upload
from bulkio.core.timeutil import utcnow
from bulkio.models.import_job import (
    AuditOperation,
    DuplicateStrategy,
    ImportAuditEntry,
    ImportBatch,
    ImportJob,
    ImportRowError,
    ImportStatus,
    RowErrorReason,
    TERMINAL_IMPORT_STATUSES,
)
from bulkio.ports.module_adapter import ModuleAdapter
from bulkio.registry.loader import ModuleSpec, RegistryLoader, get_registry_loader
from bulkio.transform.column_mapper import ColumnMapper
from bulkio.validate.validator import RowValidator

logger = logging.getLogger(__name__)

ACTIVE_IMPORT_STATUSES = (ImportStatus.VALIDATING, ImportStatus.PROCESSING)
HISTORY_LIMIT = 50


class ImportService:
    def __init__(self, db: Session, loader: Optional[RegistryLoader] = None):
        self.db = db
        self.loader = loader or get_registry_loader()

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    def preview(self, module: str, content: bytes) -> Dict[str, Any]:
        """
        Inspect a file without creating a job.

        Returns headers, total data rows, the suggested mapping, required
        keys the suggestion leaves unmapped and the first preview rows.
        """
        spec = self.loader.get_module(module)
        if not content:
            raise StructuralParseError("Empty file")

        parsed = parse(content)
        limit = settings.preview_rows
        rows = []
        total = 0
        for row in parsed.rows:
            total += 1
            if len(rows) < limit:
                rows.append({"row_number": row.number, "data": row.as_dict(parsed.headers)})

        suggestions = ColumnMapper(spec).suggest(parsed.headers)
        missing = [s["key"] for s in suggestions if s["required"] and not s["source_column"]]

        return {
            "module": module,
            "headers": parsed.headers,
            "total_rows": total,
            "suggested_mapping": suggestions,
            "missing_required": missing,
            "rows": rows,
        }

    def create_job(
        self,
        module: str,
        content: bytes,
        original_filename: str,
        mapping: Optional[Any] = None,
        duplicate_strategy: DuplicateStrategy = DuplicateStrategy.ERROR,
        context: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> ImportJob:
        """
        Validate the request and persist a PENDING job.

        Raises:
            UnsupportedModuleError: Unknown module
            StructuralParseError: Empty file or unusable header row
            MappingError: Required keys without a source column
            MissingContextError: Module context incomplete
        """
        job = self._prepare_job(module, content, original_filename, mapping, duplicate_strategy, context, created_by)
        job.file_path = str(save_upload(content, original_filename))
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Created import job {job.id} for module {module} ({original_filename})")
        return job

    def _prepare_job(
        self,
        module: str,
        content: bytes,
        original_filename: str,
        mapping: Optional[Any],
        duplicate_strategy: DuplicateStrategy,
        context: Optional[Dict[str, Any]],
        created_by: Optional[str],
    ) -> ImportJob:
        """Run the pre-flight checks and build an unsaved job without its stored file."""
        spec = self.loader.get_module(module)
        if not content:
            raise StructuralParseError("Empty file")

        headers = parse(content).headers
        resolved = ColumnMapper(spec).resolve(headers, mapping)

        adapter = get_module_adapter(module, self.db, context, loader=self.loader)
        adapter.check_context([m["key"] for m in resolved if m["source_column"]])

        return ImportJob(
            module=module,
            original_filename=original_filename,
            status=ImportStatus.PENDING,
            duplicate_strategy=DuplicateStrategy(duplicate_strategy),
            column_mapping=resolved,
            context=context or None,
            created_by=created_by,
        )

    def create_batch(
        self,
        files: List[Tuple[bytes, str]],
        entries: Any,
        created_by: Optional[str] = None,
    ) -> ImportBatch:
        """
        Create one PENDING job per ``(content, filename)`` in a single batch.

        ``entries`` is a list parallel to ``files`` of
        ``{"module", "mapping", "duplicate_strategy", "context"}``. Every
        entry passes pre-flight before anything is stored, so a bad entry
        leaves no jobs behind.

        Raises:
            InvalidBatchError: No files, entries not matching files, or an entry failing pre-flight
        """
        if not files:
            raise InvalidBatchError("At least one file is required")
        if not isinstance(entries, list) or len(entries) != len(files):
            raise InvalidBatchError("entries must be a list with one entry per file")

        jobs = []
        for index, ((content, filename), entry) in enumerate(zip(files, entries)):
            if not isinstance(entry, dict) or not str(entry.get("module") or "").strip():
                raise InvalidBatchError("Each entry must include module", index=index)
            try:
                strategy = DuplicateStrategy(entry.get("duplicate_strategy") or DuplicateStrategy.ERROR)
            except ValueError:
                raise InvalidBatchError(
                    f"Unknown duplicate_strategy: {entry.get('duplicate_strategy')}", index=index
                )
            try:
                job = self._prepare_job(
                    str(entry["module"]).strip(),
                    content,
                    filename,
                    entry.get("mapping"),
                    strategy,
                    entry.get("context"),
                    created_by,
                )
            except BulkIOError as e:
                raise InvalidBatchError(str(e), index=index, missing_keys=getattr(e, "missing_keys", None)) from e
            jobs.append(job)

        batch = ImportBatch(total_jobs=len(jobs), created_by=created_by)
        for job, (content, filename) in zip(jobs, files):
            job.file_path = str(save_upload(content, filename))
            job.batch = batch
        self.db.add(batch)
        self.db.commit()
        self.db.refresh(batch)

        logger.info(f"Created import batch {batch.id} with {len(jobs)} jobs")
        return batch

    def get_batch(self, batch_id: int) -> Dict[str, Any]:
        """
        A batch with its jobs in creation order and its derived progress.

        ``completed_jobs`` counts every job that reached a terminal status,
        ``failed_jobs`` those among them that FAILED.
        """
        batch = self.db.get(ImportBatch, batch_id)
        if not batch:
            raise JobNotFoundError("Import batch", batch_id)

        jobs = (
            self.db.query(ImportJob)
            .filter(ImportJob.batch_id == batch_id)
            .order_by(ImportJob.created_at, ImportJob.id)
            .all()
        )
        completed = sum(1 for j in jobs if j.status in TERMINAL_IMPORT_STATUSES)
        failed = sum(1 for j in jobs if j.status == ImportStatus.FAILED)

        if completed == len(jobs):
            status = ImportStatus.COMPLETED
        elif all(j.status == ImportStatus.PENDING for j in jobs):
            status = ImportStatus.PENDING
        else:
            status = ImportStatus.PROCESSING

        return {
            "id": batch.id,
            "status": status,
            "total_jobs": batch.total_jobs,
            "completed_jobs": completed,
            "failed_jobs": failed,
            "created_by": batch.created_by,
            "created_at": batch.created_at,
            "jobs": jobs,
        }

    def submit_job(self, job_id: int) -> str:
        """Hand a job to the configured task runner."""
        from bulkio.core.task_runner import get_task_runner
        from bulkio.services.job_tasks import run_import_job

        return get_task_runner().submit(run_import_job, job_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id: int) -> ImportJob:
        job = self.db.get(ImportJob, job_id)
        if not job:
            raise JobNotFoundError("Import job", job_id)
        return job

    def list_jobs(self, created_by: Optional[str] = None, limit: int = HISTORY_LIMIT) -> List[ImportJob]:
        query = self.db.query(ImportJob)
        if created_by:
            query = query.filter(ImportJob.created_by == created_by)
        return query.order_by(ImportJob.created_at.desc(), ImportJob.id.desc()).limit(limit).all()

    def list_errors(self, job_id: int, skip: int = 0, limit: int = 100) -> Tuple[int, List[ImportRowError]]:
        self.get_job(job_id)
        base = self.db.query(ImportRowError).filter(ImportRowError.job_id == job_id)
        total = base.count()
        items = (
            base.order_by(ImportRowError.row_number, ImportRowError.id)
            .offset(skip)
            .limit(limit)
            .all()
        )
        return total, items

    def list_audit(self, job_id: int) -> List[ImportAuditEntry]:
        self.get_job(job_id)
        return (
            self.db.query(ImportAuditEntry)
            .filter(ImportAuditEntry.job_id == job_id)
            .order_by(ImportAuditEntry.id)
            .all()
        )

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _transition(self, job_id: int, from_statuses, **values) -> bool:
        """Conditional status update; True when this caller won the transition."""
        result = self.db.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status.in_(list(from_statuses)))
            .values(updated_at=utcnow(), **values)
        )
        self.db.commit()
        return result.rowcount == 1

    def claim(self, job_id: int) -> bool:
        return self._transition(
            job_id, [ImportStatus.PENDING], status=ImportStatus.VALIDATING, started_at=utcnow()
        )

    def claim_next(self, older_than_minutes: Optional[int] = None) -> Optional[int]:
        """Claim the oldest PENDING job, if any, optionally only those created before a cutoff."""
        query = select(ImportJob.id).where(ImportJob.status == ImportStatus.PENDING)
        if older_than_minutes:
            query = query.where(ImportJob.created_at < utcnow() - timedelta(minutes=older_than_minutes))
        candidates = self.db.execute(
            query
            .order_by(ImportJob.created_at, ImportJob.id)
            .limit(10)
        ).scalars().all()

        for job_id in candidates:
            if self.claim(job_id):
                return job_id
        return None

    def process_pending(self, limit: int = 10, older_than_minutes: Optional[int] = None) -> List[int]:
        """Drain up to ``limit`` PENDING jobs in creation order."""
        processed = []
        while len(processed) < limit:
            job_id = self.claim_next(older_than_minutes)
            if job_id is None:
                break
            self.process_job(job_id, claimed=True)
            processed.append(job_id)
        return processed

    def recover_stuck(self, minutes: Optional[int] = None) -> List[int]:
        """
        Return jobs stuck in VALIDATING/PROCESSING to PENDING.

        Counters are kept; a re-run resumes after the last committed row.
        """
        threshold = utcnow() - timedelta(minutes=max(5, minutes or settings.STUCK_JOB_MINUTES))
        stuck = self.db.execute(
            select(ImportJob.id).where(
                ImportJob.status.in_(list(ACTIVE_IMPORT_STATUSES)),
                ImportJob.started_at < threshold,
            )
        ).scalars().all()

        recovered = [
            job_id for job_id in stuck
            if self._transition(job_id, ACTIVE_IMPORT_STATUSES, status=ImportStatus.PENDING, started_at=None)
        ]
        if recovered:
            logger.warning(f"Recovered {len(recovered)} stuck import jobs: {recovered}")
        return recovered

    def cancel(self, job_id: int) -> ImportJob:
        """
        Request cancellation.

        Terminal jobs are returned unchanged. A PENDING job is finished
        immediately; an active job stops before its next row.
        """
        job = self.get_job(job_id)
        if job.status in TERMINAL_IMPORT_STATUSES:
            return job

        now = utcnow()
        if not self._transition(job_id, [ImportStatus.PENDING], status=ImportStatus.CANCELLED, completed_at=now):
            self._transition(job_id, ACTIVE_IMPORT_STATUSES, status=ImportStatus.CANCELLED)

        self.db.refresh(job)
        logger.info(f"Import job {job_id} cancellation requested (now {job.status.value})")
        return job

    def _current_status(self, job_id: int) -> ImportStatus:
        return self.db.execute(select(ImportJob.status).where(ImportJob.id == job_id)).scalar_one()

    def _finish_cancelled(self, job_id: int) -> None:
        self.db.execute(
            update(ImportJob)
            .where(
                ImportJob.id == job_id,
                ImportJob.status == ImportStatus.CANCELLED,
                ImportJob.completed_at.is_(None),
            )
            .values(completed_at=utcnow(), updated_at=utcnow())
        )
        self.db.commit()

    def _fail(self, job_id: int, message: str) -> None:
        self.db.rollback()
        if not self._transition(
            job_id,
            [ImportStatus.PENDING, *ACTIVE_IMPORT_STATUSES],
            status=ImportStatus.FAILED,
            error_message=message,
            completed_at=utcnow(),
        ):
            self._finish_cancelled(job_id)
        logger.error(f"Import job {job_id} failed: {message}")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def process_job(self, job_id: int, claimed: bool = False) -> Optional[ImportJob]:
        """
        Run a job to completion. Safe to call for any job id: jobs that are
        not PENDING are left alone unless the caller already claimed them.
        """
        job = self.db.get(ImportJob, job_id)
        if job is None:
            logger.warning(f"Import job {job_id} not found")
            return None

        if not claimed and not self.claim(job_id):
            logger.info(f"Import job {job_id} not claimable (status {job.status.value}), skipping")
            return job

        try:
            self._run(job_id)
        except Exception as e:
            logger.exception(f"Import job {job_id} aborted")
            self._fail(job_id, str(e))

        self.db.expire_all()
        return self.db.get(ImportJob, job_id)

    def _run(self, job_id: int) -> None:
        job = self.db.get(ImportJob, job_id)
        spec = self.loader.get_module(job.module)
        adapter = get_module_adapter(job.module, self.db, job.context, loader=self.loader)

        # VALIDATING: the whole file must tokenize before any row is charged
        try:
            adapter.check_ready()
            total = count_rows(job.file_path)
        except (StructuralParseError, AdapterUnavailableError) as e:
            self._fail(job_id, str(e))
            return

        if not self._transition(
            job_id, [ImportStatus.VALIDATING], status=ImportStatus.PROCESSING, total_rows=total
        ):
            self._finish_cancelled(job_id)
            logger.info(f"Import job {job_id} cancelled during validation")
            return

        logger.info(f"Import job {job_id} processing {total} rows ({job.module})")

        self.db.refresh(job)
        cancelled = self._process_rows(job, spec, adapter)

        if cancelled:
            self._finish_cancelled(job_id)
            logger.info(f"Import job {job_id} cancelled after {job.processed_rows} rows")
            return

        if self._transition(
            job_id, [ImportStatus.PROCESSING], status=ImportStatus.COMPLETED, completed_at=utcnow()
        ):
            self.db.refresh(job)
            logger.info(
                f"Import job {job_id} completed: {job.success_rows} succeeded, "
                f"{job.skipped_rows} skipped, {job.error_rows} failed"
            )
        else:
            self._finish_cancelled(job_id)

    def _process_rows(self, job: ImportJob, spec: ModuleSpec, adapter: ModuleAdapter) -> bool:
        """Apply every remaining row in file order. Returns True if cancelled."""
        parsed = parse_file(job.file_path)
        validator = RowValidator(spec, job.column_mapping, parsed.headers)
        strategy = job.duplicate_strategy
        resume_after = job.processed_rows

        for row in parsed.rows:
            if row.number <= resume_after:
                continue

            if self._current_status(job.id) != ImportStatus.PROCESSING:
                parsed.rows.close()
                return True

            self._apply_row(job, adapter, validator, parsed.headers, row, strategy)

        return False

    def _apply_row(
        self,
        job: ImportJob,
        adapter: ModuleAdapter,
        validator: RowValidator,
        headers: List[str],
        row: CsvRow,
        strategy: DuplicateStrategy,
    ) -> None:
        try:
            canonical = validator.canonicalize(row)
            adapter.validate_row(canonical)

            existing = adapter.find_existing(canonical)
            if existing is None:
                record_id = self._adapter_call(adapter.create_record, canonical)
                self._audit(job, row.number, AuditOperation.CREATE, record_id)
                job.success_rows += 1
            elif strategy == DuplicateStrategy.SKIP:
                self._audit(job, row.number, AuditOperation.SKIP, existing)
                job.skipped_rows += 1
            elif strategy == DuplicateStrategy.UPDATE:
                # Blank optional cells never erase existing values
                values = {k: v for k, v in canonical.items() if v is not None}
                snapshot = self._adapter_call(adapter.update_record, existing, values)
                self._audit(job, row.number, AuditOperation.UPDATE, existing, snapshot)
                job.success_rows += 1
            else:
                keys = ", ".join(f"{k}={canonical.get(k, adapter.context.get(k))}" for k in adapter.spec.natural_key)
                raise DuplicateError(f"Record already exists ({keys})")

            job.processed_rows += 1
            self.db.commit()

        except RowError as e:
            self._record_row_error(job, row, headers, e)
        except Exception as e:
            logger.warning(f"Import job {job.id} row {row.number}: unexpected error {e!r}")
            self._record_row_error(job, row, headers, AdapterFailure(str(e)))

    @staticmethod
    def _adapter_call(method, *args):
        try:
            return method(*args)
        except RowError:
            raise
        except Exception as e:
            raise AdapterFailure(str(e) or e.__class__.__name__) from e

    def _audit(
        self,
        job: ImportJob,
        row_number: int,
        operation: AuditOperation,
        record_id: str,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.db.add(ImportAuditEntry(
            job_id=job.id,
            row_number=row_number,
            operation=operation,
            record_id=str(record_id),
            previous_snapshot=snapshot,
        ))

    def _record_row_error(self, job: ImportJob, row: CsvRow, headers: List[str], error: RowError) -> None:
        # Discard anything the failed row flushed
        self.db.rollback()

        logger.debug(f"Import job {job.id} row {row.number} [{error.reason}]: {error}")
        self.db.add(ImportRowError(
            job_id=job.id,
            row_number=row.number,
            raw_values=row.as_dict(headers),
            reason=RowErrorReason(error.reason),
            message=str(error),
        ))
        job.error_rows += 1
        job.processed_rows += 1
        self.db.commit()
