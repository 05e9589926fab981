"""Fire-and-forget scheduling of import jobs onto the Celery imports queue."""

from __future__ import annotations

import logging
from typing import Any

from bulk_importer.services.import_strategies import available_import_types, get_strategy
from bulk_importer.workers.celery_app import IMPORTS_QUEUE
from bulk_importer.workers.tasks.run_import import run_import_task

logger = logging.getLogger(__name__)

EVENT_IMPORT_TYPES = {
    get_strategy(import_type).event_name: import_type for import_type in available_import_types()
}


def schedule(event_name: str, payload: dict[str, Any]) -> str:
    """Enqueue the task behind ``event_name`` and return the Celery task id.

    ``payload`` carries ``jobId``, ``blobUrl``, ``tenantId``, ``fileName`` and
    ``importType``. Delivery is at-least-once; the runner ignores jobs that
    are no longer pending.
    """
    if event_name not in EVENT_IMPORT_TYPES:
        raise ValueError(f"Unknown import event: {event_name}")
    if payload["importType"] != EVENT_IMPORT_TYPES[event_name]:
        raise ValueError(
            f"Event {event_name} cannot carry import type {payload['importType']}"
        )

    async_result = run_import_task.apply_async(
        kwargs={
            "job_id": payload["jobId"],
            "blob_url": payload["blobUrl"],
            "tenant_id": payload["tenantId"],
            "file_name": payload["fileName"],
            "import_type": payload["importType"],
        },
        queue=IMPORTS_QUEUE,
    )
    logger.info(f"Scheduled {event_name} for job {payload['jobId']} as task {async_result.id}")
    return async_result.id
