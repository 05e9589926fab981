#!/usr/bin/env python3
"""Start the import worker with suppressed security warnings for containerized environments."""

import sys
import warnings

# Suppress the superuser privilege warning
warnings.filterwarnings("ignore", category=UserWarning, message=".*superuser privileges.*")
warnings.filterwarnings("ignore", category=RuntimeWarning, message=".*superuser privileges.*")

from bulk_importer.core.config import get_settings  # noqa: E402
from bulk_importer.workers.celery_app import IMPORTS_QUEUE, celery_app  # noqa: E402

if __name__ == "__main__":
    settings = get_settings()
    celery_app.worker_main(
        argv=[
            "worker",
            f"--loglevel={settings.log_level.lower()}",
            f"--queues={IMPORTS_QUEUE}",
            f"--concurrency={settings.max_concurrent_imports}",
            "--without-mingle",
            "--without-gossip",
        ]
        + sys.argv[1:]
    )
