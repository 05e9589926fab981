"""Track CSV import jobs: lifecycle, counters, row errors and result summary."""

import math
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base, JSONType

JOB_PENDING = "pending"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
TERMINAL_STATUSES = (JOB_COMPLETED, JOB_FAILED)


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    import_type = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False, default=JOB_PENDING)
    file_name = Column(String(255), nullable=False)
    uploaded_by = Column(String(255), nullable=False, default="unknown")
    blob_url = Column(Text, nullable=False)
    total_records = Column(Integer, nullable=False, default=0)
    processed_records = Column(Integer, nullable=False, default=0)
    successful_records = Column(Integer, nullable=False, default=0)
    failed_records = Column(Integer, nullable=False, default=0)
    results = Column(JSONType)
    cancel_requested = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    row_errors = relationship(
        "ImportJobError",
        order_by="ImportJobError.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("ix_import_jobs_tenant_created", tenant_id, created_at),)

    @property
    def errors(self) -> list[dict]:
        return [error.as_dict() for error in self.row_errors]

    @property
    def progress_percent(self) -> int:
        if not self.total_records:
            return 0
        # Half-up, so 12.5% shows as 13
        return math.floor((self.processed_records or 0) / self.total_records * 100 + 0.5)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ImportJobError(Base):
    """One failed row (``row`` >= 2) or a job-level failure (``row`` 0)."""

    __tablename__ = "import_job_errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(36), ForeignKey("import_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    row = Column(Integer, nullable=False)
    identifier = Column(String(255))
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def as_dict(self) -> dict:
        return {"row": self.row, "identifier": self.identifier, "message": self.message}
