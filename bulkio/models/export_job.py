from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Enum as SQLEnum
from bulkio.core.database import Base
from bulkio.core.timeutil import utcnow
import enum


class ExportStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ExportJob(Base):
    __tablename__ = "export_jobs"

    id = Column(Integer, primary_key=True, index=True)
    module = Column(String, nullable=False, index=True)
    filters = Column(JSON, nullable=True)  # Exact-match {field_key: value}
    columns = Column(JSON, nullable=False)  # Ordered canonical keys
    context = Column(JSON, nullable=True)
    status = Column(SQLEnum(ExportStatus), default=ExportStatus.PENDING, nullable=False, index=True)
    total_rows = Column(Integer, default=0, nullable=False)
    file_name = Column(String, nullable=False)
    artifact_path = Column(String, nullable=True)  # Only set once COMPLETED
    error_message = Column(Text, nullable=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
