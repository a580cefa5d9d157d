"""
Export job engine.

PENDING → PROCESSING → COMPLETED | FAILED

Matching records stream from the module adapter through its serializer
into a temporary file that is moved into place only on success, so a
failed export never leaves a partial artifact behind.
"""
import os
from datetime import timedelta
from itertools import islice
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from bulkio.adapters.modules import coerce_filter_value, get_module_adapter
from bulkio.codec.csv_codec import write_csv
from bulkio.core.config import settings
from bulkio.core.exceptions import ArtifactNotReadyError, InvalidQueryError, JobNotFoundError
from bulkio.core.storage import artifact_dir, safe_filename
from bulkio.core.timeutil import utcnow
from bulkio.models.export_job import ExportJob, ExportStatus
from bulkio.registry.loader import ModuleSpec, RegistryLoader, get_registry_loader

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
PREVIEW_DEFAULT = 20
PREVIEW_MAX = 50


class ExportService:
    def __init__(self, db: Session, loader: Optional[RegistryLoader] = None):
        self.db = db
        self.loader = loader or get_registry_loader()

    def _resolve_columns(self, spec: ModuleSpec, columns: Optional[List[str]]) -> List[str]:
        resolved = list(columns) if columns else list(spec.default_columns)
        unknown = [c for c in resolved if spec.get_field(c) is None]
        if unknown:
            raise InvalidQueryError(f"Unknown columns for {spec.name}: {', '.join(unknown)}")
        if len(set(resolved)) != len(resolved):
            raise InvalidQueryError("Columns must be unique")
        return resolved

    def _check_filters(self, spec: ModuleSpec, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Reject unknown fields and values that do not fit their field. Returned as given."""
        filters = dict(filters or {})
        unknown = [k for k in filters if spec.get_field(k) is None]
        if unknown:
            raise InvalidQueryError(f"Unknown filter fields for {spec.name}: {', '.join(unknown)}")
        for key, value in filters.items():
            coerce_filter_value(spec.get_field(key), value)
        return filters

    def start_export(
        self,
        module: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        file_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ExportJob:
        """
        Validate the request and persist a PENDING export job.

        Raises:
            UnsupportedModuleError: Unknown module
            InvalidQueryError: Unknown filter fields or columns
            MissingContextError: Module context incomplete
        """
        spec = self.loader.get_module(module)
        resolved_columns = self._resolve_columns(spec, columns)
        resolved_filters = self._check_filters(spec, filters)

        adapter = get_module_adapter(module, self.db, context, loader=self.loader)
        adapter.check_context(resolved_columns)

        job = ExportJob(
            module=module,
            filters=resolved_filters or None,
            columns=resolved_columns,
            context=context or None,
            status=ExportStatus.PENDING,
            file_name=safe_filename(file_name, module),
            created_by=created_by,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Created export job {job.id} for module {module}")
        return job

    @staticmethod
    def _artifact_paths(job: ExportJob) -> Tuple[Path, Path]:
        """Final artifact path and the temporary file written before the rename."""
        final_path = artifact_dir() / f"{job.id}_{job.file_name}"
        return final_path, final_path.with_name(final_path.name + ".part")

    def submit_job(self, job_id: int) -> str:
        from bulkio.core.task_runner import get_task_runner
        from bulkio.services.job_tasks import run_export_job

        return get_task_runner().submit(run_export_job, job_id)

    def process_job(self, job_id: int) -> Optional[ExportJob]:
        """Run a PENDING export to COMPLETED or FAILED."""
        job = self.db.get(ExportJob, job_id)
        if job is None:
            logger.warning(f"Export job {job_id} not found")
            return None

        claimed = self.db.execute(
            update(ExportJob)
            .where(ExportJob.id == job_id, ExportJob.status == ExportStatus.PENDING)
            .values(status=ExportStatus.PROCESSING, started_at=utcnow())
        ).rowcount == 1
        self.db.commit()
        if not claimed:
            logger.info(f"Export job {job_id} not claimable (status {job.status.value}), skipping")
            return job

        self.db.refresh(job)
        final_path, tmp_path = self._artifact_paths(job)

        try:
            spec = self.loader.get_module(job.module)
            adapter = get_module_adapter(job.module, self.db, job.context, loader=self.loader)
            adapter.check_ready()

            headers = [spec.get_field(c).header for c in job.columns]
            rows = (adapter.serialize_row(record, job.columns) for record in adapter.query(job.filters))

            with open(tmp_path, "wb") as sink:
                total = write_csv(sink, headers, rows)

            os.replace(tmp_path, final_path)

            job.status = ExportStatus.COMPLETED
            job.total_rows = total
            job.artifact_path = str(final_path)
            job.completed_at = utcnow()
            self.db.commit()
            logger.info(f"Export job {job_id} completed: {total} rows → {final_path}")

        except Exception as e:
            logger.exception(f"Export job {job_id} failed")
            self.db.rollback()
            if tmp_path.exists():
                tmp_path.unlink()
            job.status = ExportStatus.FAILED
            job.error_message = str(e)
            job.artifact_path = None
            job.completed_at = utcnow()
            self.db.commit()

        self.db.refresh(job)
        return job

    def run_export(self, **kwargs) -> ExportJob:
        """Create and run an export in the caller, waiting for the outcome."""
        job = self.start_export(**kwargs)
        return self.process_job(job.id)

    def recover_stuck(self, minutes: Optional[int] = None) -> List[int]:
        """
        Return exports stuck in PROCESSING to PENDING.

        The worker died mid-write: its temporary file is removed and the
        export starts over from the first record when next processed.
        """
        threshold = utcnow() - timedelta(minutes=max(5, minutes or settings.STUCK_JOB_MINUTES))
        stuck = self.db.query(ExportJob).filter(
            ExportJob.status == ExportStatus.PROCESSING,
            ExportJob.started_at < threshold,
        ).all()

        recovered = []
        for job in stuck:
            reset = self.db.execute(
                update(ExportJob)
                .where(ExportJob.id == job.id, ExportJob.status == ExportStatus.PROCESSING)
                .values(status=ExportStatus.PENDING, started_at=None)
            ).rowcount == 1
            self.db.commit()
            if not reset:
                continue
            tmp_path = self._artifact_paths(job)[1]
            if tmp_path.exists():
                tmp_path.unlink()
            recovered.append(job.id)

        if recovered:
            logger.warning(f"Recovered {len(recovered)} stuck export jobs: {recovered}")
        return recovered

    def process_pending(self, limit: int = 10, older_than_minutes: Optional[int] = None) -> List[int]:
        """
        Run up to ``limit`` PENDING exports in creation order.

        ``older_than_minutes`` restricts the drain to jobs nobody dispatched.
        """
        query = self.db.query(ExportJob.id).filter(ExportJob.status == ExportStatus.PENDING)
        if older_than_minutes:
            query = query.filter(ExportJob.created_at < utcnow() - timedelta(minutes=older_than_minutes))
        candidates = [row.id for row in query.order_by(ExportJob.created_at, ExportJob.id).limit(limit)]

        processed = []
        for job_id in candidates:
            job = self.process_job(job_id)
            # Another worker may have claimed it first
            if job is not None and job.status != ExportStatus.PENDING:
                processed.append(job_id)
        return processed

    def preview(
        self,
        module: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """First serialized rows of an export, without creating a job."""
        spec = self.loader.get_module(module)
        resolved_columns = self._resolve_columns(spec, columns)
        resolved_filters = self._check_filters(spec, filters)

        adapter = get_module_adapter(module, self.db, context, loader=self.loader)
        adapter.check_context(resolved_columns)

        limit = PREVIEW_DEFAULT if not limit or limit <= 0 else min(limit, PREVIEW_MAX)
        records = islice(adapter.query(resolved_filters), limit)

        return {
            "module": module,
            "columns": resolved_columns,
            "headers": [spec.get_field(c).header for c in resolved_columns],
            "rows": [adapter.serialize_row(r, resolved_columns) for r in records],
        }

    def get_job(self, job_id: int) -> ExportJob:
        job = self.db.get(ExportJob, job_id)
        if not job:
            raise JobNotFoundError("Export job", job_id)
        return job

    def list_jobs(self, created_by: Optional[str] = None, limit: int = HISTORY_LIMIT) -> List[ExportJob]:
        query = self.db.query(ExportJob)
        if created_by:
            query = query.filter(ExportJob.created_by == created_by)
        return query.order_by(ExportJob.created_at.desc(), ExportJob.id.desc()).limit(limit).all()

    def artifact(self, job_id: int) -> Path:
        """
        Path of a completed export's artifact.

        Raises:
            ArtifactNotReadyError: Job not completed or file missing
        """
        job = self.get_job(job_id)
        if job.status != ExportStatus.COMPLETED or not job.artifact_path:
            raise ArtifactNotReadyError(f"Export job {job_id} is {job.status.value}")
        path = Path(job.artifact_path)
        if not path.exists():
            raise ArtifactNotReadyError(f"Artifact for export job {job_id} is missing")
        return path
