"""Import job request/response payloads (camelCase on the wire)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RowError(CamelModel):
    row: int = Field(..., description="1-based line number in the uploaded file; 0 for job-level errors")
    identifier: str | None = Field(None, description="Email or SKU of the failed row")
    message: str


class ImportAccepted(CamelModel):
    job_id: str
    import_type: str
    file_name: str
    file_size: int
    estimated_records: int
    status: str = "pending"
    message: str


class ImportJobStatus(CamelModel):
    id: str
    tenant_id: str
    import_type: str
    file_name: str
    uploaded_by: str
    status: str = Field(..., description="pending|processing|completed|failed")
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    progress_percent: int = Field(..., description="0-100, rounded")
    estimated_time_remaining: int | None = Field(
        None, description="Seconds, only while processing"
    )
    message: str | None = None
    cancel_requested: bool = False
    errors: list[RowError] = Field(default_factory=list)
    results: dict[str, Any] | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
