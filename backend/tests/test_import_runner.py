"""End-to-end runs of the import runner against a SQLite database."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bulk_importer.core.config import get_settings
from bulk_importer.db.models import ImportJob, User
from bulk_importer.db.session import SessionLocal
from bulk_importer.services import csv_ingest, import_runner, job_lifecycle
from bulk_importer.services.csv_ingest import RESULTS_SAMPLE_LIMIT
from bulk_importer.utils.csv_parser import CSVParseError

from conftest import TENANT_A, TENANT_B, reload_job


def _users_csv(count, broken=()):
    lines = ["name,email"]
    for i in range(1, count + 1):
        email = "" if i in broken else f"user{i}@example.com"
        lines.append(f"User {i},{email}")
    return "\n".join(lines) + "\n"


class TestSuccessfulRuns:
    def test_partial_failure_completes(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("name,email\nAnn,ann@x.com\nBob,\nCy,cy@x.com\n"))

        summary = run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "completed"
        assert (job.total_records, job.processed_records) == (3, 3)
        assert (job.successful_records, job.failed_records) == (2, 1)
        assert job.errors == [{"row": 3, "identifier": None, "message": "Email is required"}]
        assert job.started_at is not None and job.completed_at is not None
        assert job.results["successful"] == 2
        assert [entity["email"] for entity in job.results["successfulEntities"]] == [
            "ann@x.com",
            "cy@x.com",
        ]
        assert summary["totalProcessed"] == 3
        assert summary["tenantId"] == TENANT_A

    def test_counters_add_up_across_chunks(self, session, csv_blob, make_job, run_job):
        broken = {7, 51, 99, 120}
        job = make_job(csv_blob(_users_csv(120, broken)))

        run_job(job)

        job = reload_job(session, job.id)
        assert job.processed_records == job.successful_records + job.failed_records == 120
        assert job.failed_records == len(job.errors) == len(broken)
        assert sorted(error["row"] for error in job.errors) == [row + 1 for row in sorted(broken)]
        assert len(job.results["successfulEntities"]) == RESULTS_SAMPLE_LIMIT

    def test_progress_only_moves_forward(self, csv_blob, make_job, run_job, monkeypatch):
        observed = []

        def _snapshot(job_id, **kwargs):
            with SessionLocal() as reader:
                stored = reader.get(ImportJob, job_id)
                observed.append((stored.processed_records, stored.successful_records))
                assert len(stored.errors) == stored.failed_records
            return kwargs

        monkeypatch.setattr(import_runner, "publish_progress", _snapshot)
        job = make_job(csv_blob(_users_csv(130, broken={10, 75, 120})))

        run_job(job)

        processed = [count for count, _ in observed]
        assert processed == sorted(processed)
        # one snapshot per 50-row chunk is already committed when published
        assert [50, 100, 130] == [count for count in processed if count][:3]

    def test_writes_scoped_to_job_tenant(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("name,email\nAnn,ann@x.com\n"), tenant_id=TENANT_B)

        run_job(job)

        tenants = session.scalars(select(User.tenant_id)).all()
        assert tenants == [TENANT_B]

    def test_product_import(self, session, csv_blob, make_job, run_job):
        blob_url = csv_blob(
            "Product Name,Price,Product SKU,Stock Quantity,Reason\n"
            "Widget,9.99,W-1,10,Purchase Order\n"
            "Gadget,,G-1,,\n"
        )
        job = make_job(blob_url, import_type="products")

        run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "completed"
        assert (job.successful_records, job.failed_records) == (1, 1)
        assert job.errors == [{"row": 3, "identifier": "G-1", "message": "Price is required"}]
        assert job.results["successfulEntities"][0]["stockQuantity"] == 10

    def test_duplicate_rows_in_one_file(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("name,email\nAnn,ann@x.com\nAnn,ann@x.com\n"))

        run_job(job)

        job = reload_job(session, job.id)
        assert (job.successful_records, job.failed_records) == (1, 1)
        assert job.errors[0]["message"] == "User with this email already exists"


class TestFatalFailures:
    def test_header_only_file_fails_job(self, session, csv_blob, make_job, run_job, progress_events):
        job = make_job(csv_blob("name,email\n"))

        with pytest.raises(CSVParseError):
            run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "failed"
        assert job.completed_at is not None
        assert job.errors == [
            {
                "row": 0,
                "identifier": None,
                "message": "Import failed: CSV file must contain header and at least one data row",
            }
        ]
        assert progress_events[-1]["status"] == "failed"

    def test_missing_required_column_fails_job(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("phone\n123\n"))

        with pytest.raises(CSVParseError):
            run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "failed"
        assert "Required columns missing" in job.errors[0]["message"]

    def test_unreachable_blob_fails_job(self, session, tmp_path, make_job, run_job):
        job = make_job((tmp_path / "gone.csv").as_uri())

        with pytest.raises(Exception, match="Failed to download file"):
            run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "failed"
        assert len(job.errors) == 1
        assert job.errors[0]["row"] == 0

    def test_unknown_import_type_fails_job(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("name\nx\n"), import_type="invoices")

        with pytest.raises(KeyError):
            run_job(job)

        assert reload_job(session, job.id).status == "failed"


    def test_lost_database_connection_keeps_committed_chunks(
        self, session, csv_blob, make_job, run_job, monkeypatch, progress_events
    ):
        chunk_size = get_settings().user_import_chunk_size
        job = make_job(csv_blob(_users_csv(chunk_size * 3)))
        real_process_chunk = csv_ingest.process_chunk
        calls = {"count": 0}

        def _drop_connection_on_second_chunk(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError(
                    "INSERT INTO users", {}, Exception("server closed the connection")
                )
            return real_process_chunk(*args, **kwargs)

        monkeypatch.setattr(csv_ingest, "process_chunk", _drop_connection_on_second_chunk)

        with pytest.raises(OperationalError):
            run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "failed"
        assert (job.processed_records, job.successful_records) == (chunk_size, chunk_size)
        assert job.total_records == chunk_size * 3
        assert len(job.errors) == 1
        assert job.errors[0]["row"] == 0
        assert "server closed the connection" in job.errors[0]["message"]
        assert session.scalar(select(func.count()).select_from(User)) == chunk_size
        assert progress_events[-1]["status"] == "failed"

    def test_job_failed_by_reaper_is_not_reported_complete(
        self, session, csv_blob, make_job, run_job, monkeypatch
    ):
        events = []

        def _reap_after_last_chunk(job_id, **kwargs):
            events.append(kwargs)
            if kwargs["status"] == "processing" and kwargs.get("processed") == 3:
                with SessionLocal() as reaper:
                    job_lifecycle.mark_failed(
                        reaper, job_id, "Import failed: worker stopped reporting progress"
                    )
            return kwargs

        monkeypatch.setattr(import_runner, "publish_progress", _reap_after_last_chunk)
        job = make_job(csv_blob("name,email\nAnn,ann@x.com\nBob,bob@x.com\nCy,cy@x.com\n"))

        with pytest.raises(job_lifecycle.JobStateError):
            run_job(job)

        job = reload_job(session, job.id)
        assert job.status == "failed"
        assert job.errors[0]["message"] == "Import failed: worker stopped reporting progress"
        assert events[-1]["status"] == "failed"
        assert all(event.get("message") != "Import complete" for event in events)


class TestRedeliveryAndCancellation:
    def test_finished_job_is_not_rerun(self, session, csv_blob, make_job, run_job):
        job = make_job(csv_blob("name,email\nAnn,ann@x.com\n"))
        run_job(job)

        summary = run_job(reload_job(session, job.id))

        assert summary == {"jobId": job.id, "skipped": True}
        job = reload_job(session, job.id)
        assert job.processed_records == 1
        assert session.scalar(select(func.count()).select_from(User)) == 1

    def test_cancel_stops_at_chunk_boundary(self, session, csv_blob, make_job, run_job, monkeypatch):
        chunk_size = get_settings().user_import_chunk_size
        job = make_job(csv_blob(_users_csv(chunk_size * 3)))
        job_id = job.id
        calls = {"count": 0}
        original = job_lifecycle.record_chunk_progress

        def _record_then_cancel(db, *args, **kwargs):
            original(db, *args, **kwargs)
            calls["count"] += 1
            if calls["count"] == 1:
                db.query(ImportJob).filter(ImportJob.id == job_id).update(
                    {"cancel_requested": True}
                )

        monkeypatch.setattr(job_lifecycle, "record_chunk_progress", _record_then_cancel)

        with pytest.raises(job_lifecycle.ImportCancelledError):
            run_job(job)

        job = reload_job(session, job_id)
        assert job.status == "failed"
        assert job.processed_records == chunk_size
        assert job.errors[0]["message"] == f"Import failed: Import cancelled after {chunk_size} records"
        assert session.scalar(select(func.count()).select_from(User)) == chunk_size
