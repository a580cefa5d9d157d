from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Boolean, Text, Enum as SQLEnum, Index
from sqlalchemy.orm import relationship
from bulkio.core.database import Base
from bulkio.core.timeutil import utcnow
import enum


class RunStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class ScheduledExport(Base):
    """
    Recurring export definition.

    Never hard-deleted while runs reference it; deactivate instead.
    """

    __tablename__ = "scheduled_exports"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    module = Column(String, nullable=False)
    filters = Column(JSON, nullable=True)
    columns = Column(JSON, nullable=False)
    context = Column(JSON, nullable=True)
    schedule = Column(String, nullable=False)  # Cron expression or daily/weekly/monthly
    recipients = Column(JSON, nullable=False)  # List of email addresses
    format = Column(String, default="csv", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    next_run_at = Column(DateTime, nullable=True)
    last_run_at = Column(DateTime, nullable=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    runs = relationship(
        "ScheduledExportRun",
        back_populates="scheduled_export",
        order_by="ScheduledExportRun.id",
    )

    __table_args__ = (
        Index("idx_scheduled_due", "is_active", "next_run_at"),
    )


class ScheduledExportRun(Base):
    """Append-only run history of a scheduled export."""

    __tablename__ = "scheduled_export_runs"

    id = Column(Integer, primary_key=True, index=True)
    scheduled_export_id = Column(Integer, ForeignKey("scheduled_exports.id"), nullable=False, index=True)
    export_job_id = Column(Integer, ForeignKey("export_jobs.id"), nullable=True)  # Null if the job was never created
    status = Column(SQLEnum(RunStatus), nullable=False)
    error_message = Column(Text, nullable=True)
    delivery_error = Column(Text, nullable=True)  # Delivery failures do not change status
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    scheduled_export = relationship("ScheduledExport", back_populates="runs")
