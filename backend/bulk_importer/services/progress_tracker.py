"""Publish import progress snapshots to Redis for cheap polling.

The ``import_jobs`` row stays authoritative; snapshots only carry the
latest human-readable message and counters between database reads.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any

from redis.exceptions import RedisError

from bulk_importer.core.config import get_settings
from bulk_importer.utils.redis_client import create_redis_client

settings = get_settings()
redis_client = create_redis_client(settings.redis_url, decode_responses=True)
PROGRESS_PREFIX = "jobs:progress:"
PROGRESS_TTL = timedelta(hours=24)


def _key(job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{job_id}"


def publish_progress(
    job_id: str,
    *,
    status: str,
    processed: int = 0,
    total: int = 0,
    successful: int = 0,
    failed: int = 0,
    message: str | None = None,
) -> dict[str, Any]:
    """Persist a progress snapshot; Redis outages never break the import."""
    payload = {
        "jobId": job_id,
        "status": status,
        "progress": min(processed / total, 1.0) if total else 0.0,
        "processedRecords": processed,
        "totalRecords": total,
        "successfulRecords": successful,
        "failedRecords": failed,
        "message": message or f"Processed {processed}/{total or '?'} records",
    }
    try:
        redis_client.set(
            _key(job_id),
            json.dumps(payload),
            ex=int(PROGRESS_TTL.total_seconds()),
        )
    except RedisError:
        pass
    return payload


def fetch_progress(job_id: str) -> dict[str, Any]:
    """Return the latest snapshot, or an empty dict when none is available."""
    try:
        raw = redis_client.get(_key(job_id))
    except RedisError:
        return {}
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {}
