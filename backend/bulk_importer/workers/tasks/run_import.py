"""Celery task wrapping the import runner."""

from __future__ import annotations

import logging

from bulk_importer.services.import_runner import run_import_job
from bulk_importer.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="bulk_importer.workers.tasks.run_import")
def run_import_task(
    self,
    job_id: str,
    blob_url: str,
    tenant_id: str,
    file_name: str,
    import_type: str,
):
    """Process one uploaded CSV; failures are recorded on the job before re-raising."""
    logger.info(
        f"Starting {import_type} import {job_id} for tenant {tenant_id} "
        f"(delivery {self.request.retries + 1})"
    )
    return run_import_job(job_id, blob_url, tenant_id, file_name, import_type)
