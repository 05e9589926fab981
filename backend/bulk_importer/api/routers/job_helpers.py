"""Shared helpers for shaping job responses."""
from __future__ import annotations

import math
from datetime import datetime, timezone

from bulk_importer.api.schemas.job import ImportJobStatus
from bulk_importer.db.models.import_job import JOB_PROCESSING, ImportJob


def estimate_seconds_remaining(job: ImportJob, now: datetime | None = None) -> int | None:
    """Extrapolate from the processing rate so far; None unless the job is mid-run."""
    if job.status != JOB_PROCESSING or not job.processed_records or not job.started_at:
        return None
    started_at = job.started_at
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    elapsed = ((now or datetime.now(timezone.utc)) - started_at).total_seconds()
    if elapsed <= 0:
        return None
    rate = job.processed_records / elapsed
    remaining = max(job.total_records - job.processed_records, 0)
    return math.ceil(remaining / rate)


def serialize_job(job: ImportJob, progress_payload: dict | None) -> ImportJobStatus:
    """Combine the authoritative DB row with the cached progress message."""
    progress_payload = progress_payload or {}

    message = progress_payload.get("message")
    if not message:
        total_display = job.total_records if job.total_records else "?"
        message = f"Processed {job.processed_records}/{total_display} records"

    return ImportJobStatus(
        id=job.id,
        tenant_id=job.tenant_id,
        import_type=job.import_type,
        file_name=job.file_name,
        uploaded_by=job.uploaded_by,
        status=job.status,
        total_records=job.total_records or 0,
        processed_records=job.processed_records or 0,
        successful_records=job.successful_records or 0,
        failed_records=job.failed_records or 0,
        progress_percent=job.progress_percent,
        estimated_time_remaining=estimate_seconds_remaining(job),
        message=message,
        cancel_requested=bool(job.cancel_requested),
        errors=job.errors or [],
        results=job.results,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )
