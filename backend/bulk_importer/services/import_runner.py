"""Drive one import job from ``pending`` to a terminal state."""

from __future__ import annotations

import logging
from typing import Any

from bulk_importer.db.models.import_job import JOB_COMPLETED, JOB_FAILED, JOB_PROCESSING
from bulk_importer.db.session import get_fresh_session
from bulk_importer.services import csv_ingest, job_lifecycle
from bulk_importer.services.csv_ingest import ChunkResult
from bulk_importer.services.import_strategies import get_strategy
from bulk_importer.services.job_lifecycle import ImportCancelledError
from bulk_importer.services.progress_tracker import publish_progress
from bulk_importer.utils.batching import chunk_offsets

logger = logging.getLogger(__name__)


def run_import_job(
    job_id: str,
    blob_url: str,
    tenant_id: str,
    file_name: str,
    import_type: str,
) -> dict[str, Any]:
    """Parse the stored CSV and process it chunk by chunk.

    Chunks run sequentially. Each chunk's row writes and its counter update
    are committed in one transaction, so a polling client only ever sees
    progress that is durably stored. Row-level problems are recorded on the
    job; anything escaping a chunk fails the job and is re-raised.

    Returns a summary dict; ``skipped`` is True when the job was not pending
    (duplicate delivery of the same task).
    """
    session = get_fresh_session()
    try:
        if not job_lifecycle.mark_processing(session, job_id):
            logger.warning(f"Import job {job_id} is not pending, skipping delivery")
            return {"jobId": job_id, "skipped": True}

        publish_progress(job_id, status=JOB_PROCESSING, message=f"Parsing {file_name}")
        totals = ChunkResult()
        total = 0

        try:
            strategy = get_strategy(import_type)
            rows = csv_ingest.load_rows(strategy, blob_url)
            total = len(rows)
            job_lifecycle.set_total_records(session, job_id, total)

            for start_index, chunk in chunk_offsets(rows, strategy.chunk_size):
                if job_lifecycle.is_cancel_requested(session, job_id):
                    raise ImportCancelledError(
                        f"Import cancelled after {totals.processed} records"
                    )

                chunk_result = csv_ingest.process_chunk(
                    strategy, chunk, session, tenant_id, start_index
                )
                totals.merge(chunk_result)
                job_lifecycle.record_chunk_progress(session, job_id, chunk_result)
                session.commit()

                publish_progress(
                    job_id,
                    status=JOB_PROCESSING,
                    processed=totals.processed,
                    total=total,
                    successful=totals.successful,
                    failed=totals.failed,
                )

            job_lifecycle.mark_completed(session, job_id, totals)
        except Exception as exc:
            session.rollback()
            logger.error(f"Import job {job_id} ({import_type}) failed: {exc}", exc_info=True)
            job_lifecycle.mark_failed(session, job_id, f"Import failed: {exc}")
            publish_progress(
                job_id,
                status=JOB_FAILED,
                processed=totals.processed,
                total=total,
                successful=totals.successful,
                failed=totals.failed,
                message=f"Import failed: {exc}",
            )
            raise

        publish_progress(
            job_id,
            status=JOB_COMPLETED,
            processed=totals.processed,
            total=total,
            successful=totals.successful,
            failed=totals.failed,
            message="Import complete",
        )
        return {
            "jobId": job_id,
            "tenantId": tenant_id,
            "totalProcessed": totals.processed,
            **totals.summary(),
        }
    finally:
        session.close()
