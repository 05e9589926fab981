"""Durable state transitions and counters for import jobs.

Every transition is a conditional UPDATE against ``import_jobs``. Counter
updates increment in SQL so a restarted worker never rewinds progress, and
all post-start transitions require ``status = 'processing'`` so a terminal
job is never modified again. Row errors are appended to
``import_job_errors`` in the same transaction as the counters, so each
chunk only writes its own errors.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from bulk_importer.db.models.import_job import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    ImportJob,
    ImportJobError,
)
from bulk_importer.services.csv_ingest import ChunkResult

logger = logging.getLogger(__name__)


class JobStateError(RuntimeError):
    """Raised when a job left ``processing`` underneath a running worker."""


class ImportCancelledError(RuntimeError):
    """Raised at a chunk boundary when cancellation was requested."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def mark_processing(session: Session, job_id: str) -> bool:
    """Claim a pending job. Returns False when it was already claimed or finished."""
    result = session.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status == JOB_PENDING)
        .values(status=JOB_PROCESSING, started_at=_now())
    )
    session.commit()
    claimed = result.rowcount == 1
    if claimed:
        logger.info(f"Import job {job_id} moved to processing")
    return claimed


def set_total_records(session: Session, job_id: str, total: int) -> None:
    session.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status == JOB_PROCESSING)
        .values(total_records=total)
    )
    session.commit()


def record_chunk_progress(session: Session, job_id: str, chunk: ChunkResult) -> None:
    """Stage the chunk's counter increments and error rows; the caller commits with the chunk's writes."""
    result = session.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status == JOB_PROCESSING)
        .values(
            processed_records=ImportJob.processed_records + chunk.processed,
            successful_records=ImportJob.successful_records + chunk.successful,
            failed_records=ImportJob.failed_records + chunk.failed,
        )
    )
    if result.rowcount != 1:
        raise JobStateError(f"Import job {job_id} is no longer processing")
    if chunk.errors:
        session.execute(
            insert(ImportJobError),
            [{"job_id": job_id, **error} for error in chunk.errors],
        )


def is_cancel_requested(session: Session, job_id: str) -> bool:
    return bool(
        session.scalar(select(ImportJob.cancel_requested).where(ImportJob.id == job_id))
    )


def mark_completed(session: Session, job_id: str, totals: ChunkResult) -> None:
    result = session.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status == JOB_PROCESSING)
        .values(status=JOB_COMPLETED, completed_at=_now(), results=totals.summary())
    )
    if result.rowcount != 1:
        session.rollback()
        raise JobStateError(f"Import job {job_id} left processing before it could complete")
    session.commit()
    logger.info(
        f"Import job {job_id} completed: {totals.successful} succeeded, {totals.failed} failed"
    )


def mark_failed(
    session: Session,
    job_id: str,
    message: str,
    from_statuses: Sequence[str] = (JOB_PENDING, JOB_PROCESSING),
) -> bool:
    """Fail a job still in ``from_statuses``; its errors become one ``row`` 0 entry.

    Counters from committed chunks stay as they are.
    """
    result = session.execute(
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status.in_(tuple(from_statuses)))
        .values(status=JOB_FAILED, completed_at=_now())
    )
    failed = result.rowcount == 1
    if failed:
        session.execute(delete(ImportJobError).where(ImportJobError.job_id == job_id))
        session.execute(
            insert(ImportJobError),
            [{"job_id": job_id, "row": 0, "identifier": None, "message": message}],
        )
    session.commit()
    return failed


def request_cancel(session: Session, job: ImportJob) -> None:
    """Fail a job nobody has claimed yet, otherwise flag it for the next chunk boundary."""
    cancelled = mark_failed(
        session,
        job.id,
        "Import cancelled before processing started",
        from_statuses=(JOB_PENDING,),
    )
    if not cancelled:
        session.execute(
            update(ImportJob)
            .where(ImportJob.id == job.id, ImportJob.status == JOB_PROCESSING)
            .values(cancel_requested=True)
        )
        session.commit()
    session.refresh(job)


def fail_stale_jobs(session: Session, older_than: timedelta) -> list[str]:
    """Fail processing jobs whose row has not been touched for ``older_than``."""
    cutoff = _now() - older_than
    stale_ids = list(
        session.scalars(
            select(ImportJob.id).where(
                ImportJob.status == JOB_PROCESSING, ImportJob.updated_at < cutoff
            )
        )
    )
    failed = []
    for job_id in stale_ids:
        if mark_failed(
            session,
            job_id,
            "Import failed: worker stopped reporting progress",
            from_statuses=(JOB_PROCESSING,),
        ):
            failed.append(job_id)
    return failed
