from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Text, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship
from bulkio.core.database import Base
from bulkio.core.timeutil import utcnow
import enum


class ImportStatus(str, enum.Enum):
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_IMPORT_STATUSES = (ImportStatus.COMPLETED, ImportStatus.FAILED, ImportStatus.CANCELLED)


class DuplicateStrategy(str, enum.Enum):
    SKIP = "skip"
    UPDATE = "update"
    ERROR = "error"


class RowErrorReason(str, enum.Enum):
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    ADAPTER_FAILURE = "adapter-failure"


class AuditOperation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


class ImportBatch(Base):
    """Several files submitted together; each becomes its own ImportJob."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True, index=True)
    total_jobs = Column(Integer, default=0, nullable=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    jobs = relationship("ImportJob", back_populates="batch", order_by="ImportJob.id")


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True, index=True)
    module = Column(String, nullable=False, index=True)
    original_filename = Column(String, nullable=False)
    file_path = Column(String, nullable=False)  # Stored upload
    status = Column(SQLEnum(ImportStatus), default=ImportStatus.PENDING, nullable=False, index=True)

    # Progress counters
    total_rows = Column(Integer, default=0, nullable=False)
    processed_rows = Column(Integer, default=0, nullable=False)
    success_rows = Column(Integer, default=0, nullable=False)
    skipped_rows = Column(Integer, default=0, nullable=False)
    error_rows = Column(Integer, default=0, nullable=False)

    duplicate_strategy = Column(SQLEnum(DuplicateStrategy), default=DuplicateStrategy.ERROR, nullable=False)
    column_mapping = Column(JSON, nullable=False)  # [{key, source_column, required}, ...] in module field order
    context = Column(JSON, nullable=True)  # Module-specific parameters, e.g. {"project_id": 3}
    error_message = Column(Text, nullable=True)  # Job-fatal reason

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)  # Set once the worker is done with the job
    reverted_at = Column(DateTime, nullable=True)  # Set once every audit entry is compensated

    # Relationships
    batch = relationship("ImportBatch", back_populates="jobs")
    row_errors = relationship(
        "ImportRowError",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="ImportRowError.row_number",
    )
    audit_entries = relationship(
        "ImportAuditEntry",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="ImportAuditEntry.id",
    )


class ImportRowError(Base):
    """One failed data row. Immutable once written."""

    __tablename__ = "import_row_errors"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("import_jobs.id"), nullable=False)
    row_number = Column(Integer, nullable=False)  # 1-based, header excluded
    raw_values = Column(JSON, nullable=True)  # {source_header: value} as read from the file
    reason = Column(SQLEnum(RowErrorReason), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    job = relationship("ImportJob", back_populates="row_errors")

    __table_args__ = (
        Index("idx_row_errors_job_row", "job_id", "row_number"),
    )


class ImportAuditEntry(Base):
    """
    Reversible record of one row's effect.

    Entries are appended in row order; the primary key doubles as the
    chronological sequence walked backwards by rollback.
    """

    __tablename__ = "import_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("import_jobs.id"), nullable=False)
    row_number = Column(Integer, nullable=False)
    operation = Column(SQLEnum(AuditOperation), nullable=False)
    record_id = Column(String, nullable=False)  # Module-scoped record reference
    previous_snapshot = Column(JSON, nullable=True)  # Required when operation=update
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Rollback markers
    reverted_at = Column(DateTime, nullable=True)
    compensation_error = Column(Text, nullable=True)

    # Relationships
    job = relationship("ImportJob", back_populates="audit_entries")

    __table_args__ = (
        Index("idx_audit_job_seq", "job_id", "id"),
    )
