from sqlalchemy import Column, Integer, String, DateTime, JSON, Boolean, Text
from bulkio.core.database import Base
from bulkio.core.timeutil import utcnow


class ImportTemplate(Base):
    """Saved column mapping for a module, reusable across imports."""

    __tablename__ = "import_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    module = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    columns = Column(JSON, nullable=False)  # [{key, source_column}, ...]
    is_default = Column(Boolean, default=False, nullable=False)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
