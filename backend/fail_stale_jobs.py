#!/usr/bin/env python3
"""Fail import jobs stuck in 'processing' after their worker died."""

import argparse
import logging
from datetime import timedelta

from bulk_importer.core.config import get_settings
from bulk_importer.db.session import SessionLocal
from bulk_importer.services.job_lifecycle import fail_stale_jobs

logger = logging.getLogger("fail_stale_jobs")


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.stale_job_minutes,
        help="Idle time after which a processing job is considered dead",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper())

    session = SessionLocal()
    try:
        failed = fail_stale_jobs(session, timedelta(minutes=args.minutes))
    finally:
        session.close()

    for job_id in failed:
        logger.info(f"Marked stale import job {job_id} as failed")
    print(f"Failed {len(failed)} stale import job(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
