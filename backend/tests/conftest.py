"""
Shared fixtures for the bulk importer test suite.

The application reads its settings at import time, so the environment is
pointed at a throwaway SQLite database and uploads directory before any
``bulk_importer`` module is imported. Redis snapshot publishing is replaced
with an in-memory recorder so tests never need a running Redis.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="bulk-importer-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_ROOT / 'test.db'}"
os.environ["UPLOADS_DIR"] = str(_TEST_ROOT / "uploads")
os.environ["REDIS_URL"] = "redis://localhost:6399/0"

import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from bulk_importer.db.base import Base  # noqa: E402
from bulk_importer.db.models import ImportJob  # noqa: E402
from bulk_importer.db.models.import_job import JOB_PENDING  # noqa: E402
from bulk_importer.db.session import SessionLocal, engine  # noqa: E402
from bulk_importer.api.routers import imports as imports_router  # noqa: E402
from bulk_importer.services import import_runner  # noqa: E402

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


@pytest.fixture(autouse=True)
def _schema() -> Generator[None, None, None]:
    """Fresh tables for every test."""
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def progress_events(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture progress snapshots instead of writing them to Redis."""
    events: list[dict[str, Any]] = []

    def _record(job_id: str, **kwargs: Any) -> dict[str, Any]:
        payload = {"jobId": job_id, **kwargs}
        events.append(payload)
        return payload

    monkeypatch.setattr(import_runner, "publish_progress", _record)
    monkeypatch.setattr(imports_router, "publish_progress", _record)
    monkeypatch.setattr(imports_router, "fetch_progress", lambda job_id: {})
    return events


@pytest.fixture
def csv_blob(tmp_path: Path) -> Callable[[str], str]:
    """Write CSV text to disk and return its file:// blob URL."""
    counter = iter(range(1_000_000))

    def _write(text: str) -> str:
        path = tmp_path / f"upload-{next(counter)}.csv"
        path.write_text(text, encoding="utf-8")
        return path.as_uri()

    return _write


@pytest.fixture
def make_job(session: Session) -> Callable[..., ImportJob]:
    """Persist a pending job the way the upload endpoint does."""

    def _make(
        blob_url: str,
        import_type: str = "users",
        tenant_id: str = TENANT_A,
        file_name: str = "upload.csv",
    ) -> ImportJob:
        job = ImportJob(
            tenant_id=tenant_id,
            import_type=import_type,
            file_name=file_name,
            uploaded_by="tester",
            blob_url=blob_url,
            status=JOB_PENDING,
            total_records=0,
        )
        session.add(job)
        session.commit()
        return job

    return _make


@pytest.fixture
def run_job(session: Session) -> Callable[[ImportJob], dict[str, Any]]:
    """Run the import runner inline for a job and return its summary."""

    def _run(job: ImportJob) -> dict[str, Any]:
        job_id, blob_url, tenant_id = job.id, job.blob_url, job.tenant_id
        file_name, import_type = job.file_name, job.import_type
        # Release the test session's read transaction so the runner can write
        session.rollback()
        return import_runner.run_import_job(job_id, blob_url, tenant_id, file_name, import_type)

    return _run


def reload_job(session: Session, job_id: str) -> ImportJob:
    session.expire_all()
    job = session.get(ImportJob, job_id)
    assert job is not None
    return job
