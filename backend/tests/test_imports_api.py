"""HTTP-level tests for the imports router."""

import pytest
from fastapi.testclient import TestClient

from bulk_importer.api.routers import health
from bulk_importer.api.routers import imports as imports_router
from bulk_importer.core.config import get_settings
from bulk_importer.main import create_app
from bulk_importer.services.import_runner import run_import_job
from bulk_importer.services.import_strategies import get_strategy
from bulk_importer.storage import blob_store
from bulk_importer.storage.blob_store import BlobStoreError

from conftest import TENANT_A, TENANT_B

USERS_CSV = b"name,email\nAnn,ann@x.com\nBob,\nCy,cy@x.com\n"


@pytest.fixture
def scheduled(monkeypatch):
    """Record scheduled payloads instead of enqueueing Celery tasks."""
    payloads = []

    def _schedule(event_name, payload):
        payloads.append((event_name, payload))
        return "task-id"

    monkeypatch.setattr(imports_router, "schedule", _schedule)
    return payloads


@pytest.fixture
def client(scheduled):
    with TestClient(create_app()) as test_client:
        yield test_client


def _upload(client, import_type="users", content=USERS_CSV, file_name="users.csv",
            content_type="text/csv", tenant=TENANT_A):
    headers = {"X-Tenant-ID": tenant} if tenant else {}
    return client.post(
        f"/api/imports/{import_type}",
        files={"file": (file_name, content, content_type)},
        data={"uploadedBy": "ops@tenant-a"},
        headers=headers,
    )


def _run(payload):
    return run_import_job(
        payload["jobId"],
        payload["blobUrl"],
        payload["tenantId"],
        payload["fileName"],
        payload["importType"],
    )


class TestUpload:
    def test_accepts_csv_and_schedules(self, client, scheduled):
        response = _upload(client)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["importType"] == "users"
        assert body["fileName"] == "users.csv"
        assert body["fileSize"] == len(USERS_CSV)
        event_name, payload = scheduled[0]
        assert event_name == "user/bulk-import"
        assert payload["jobId"] == body["jobId"]
        assert payload["tenantId"] == TENANT_A
        assert payload["blobUrl"].startswith("file://")

        status = client.get(f"/api/imports/{body['jobId']}", headers={"X-Tenant-ID": TENANT_A})
        assert status.json()["status"] == "pending"
        assert status.json()["uploadedBy"] == "ops@tenant-a"

    def test_products_use_product_event(self, client, scheduled):
        response = _upload(client, "products", b"name,price\nWidget,1\n", "products.csv")

        assert response.status_code == 202
        assert scheduled[0][0] == "product/bulk-import"

    def test_rejects_non_csv(self, client, scheduled):
        response = _upload(client, file_name="users.xlsx", content_type="application/pdf")

        assert response.status_code == 400
        assert response.json()["detail"] == "Please upload a CSV file"
        assert scheduled == []

    def test_requires_tenant_header(self, client):
        assert _upload(client, tenant=None).status_code == 400

    def test_unknown_import_type(self, client):
        assert _upload(client, "invoices").status_code == 404

    def test_rejects_oversized_file(self, client, scheduled, monkeypatch):
        monkeypatch.setattr(get_settings(), "max_upload_bytes", 10)

        response = _upload(client)

        assert response.status_code == 413
        assert scheduled == []

    def test_storage_failure_creates_no_job(self, client, scheduled, monkeypatch):
        def _disk_full(file_obj, key, root=None):
            raise BlobStoreError("No space left on device")

        monkeypatch.setattr(blob_store, "store", _disk_full)

        response = _upload(client)

        assert response.status_code == 500
        assert client.get("/api/imports", headers={"X-Tenant-ID": TENANT_A}).json() == []
        assert scheduled == []

    def test_schedule_failure_fails_job(self, client, monkeypatch):
        def _broken(event_name, payload):
            raise ConnectionError("broker down")

        monkeypatch.setattr(imports_router, "schedule", _broken)

        response = _upload(client)

        assert response.status_code == 500
        jobs = client.get("/api/imports", headers={"X-Tenant-ID": TENANT_A}).json()
        assert [job["status"] for job in jobs] == ["failed"]


class TestStatus:
    def test_snapshot_after_processing(self, client, scheduled):
        job_id = _upload(client).json()["jobId"]
        _run(scheduled[0][1])

        body = client.get(f"/api/imports/{job_id}", headers={"X-Tenant-ID": TENANT_A}).json()

        assert body["status"] == "completed"
        assert body["totalRecords"] == 3
        assert body["processedRecords"] == 3
        assert body["successfulRecords"] == 2
        assert body["failedRecords"] == 1
        assert body["progressPercent"] == 100
        assert body["estimatedTimeRemaining"] is None
        assert body["errors"] == [{"row": 3, "identifier": None, "message": "Email is required"}]
        assert body["results"]["successful"] == 2

    def test_other_tenant_gets_404(self, client):
        job_id = _upload(client).json()["jobId"]

        response = client.get(f"/api/imports/{job_id}", headers={"X-Tenant-ID": TENANT_B})

        assert response.status_code == 404

    def test_list_is_tenant_scoped_and_filterable(self, client):
        _upload(client)
        _upload(client, "products", b"name,price\nWidget,1\n", "products.csv")
        _upload(client, tenant=TENANT_B)

        jobs = client.get("/api/imports", headers={"X-Tenant-ID": TENANT_A}).json()
        products = client.get(
            "/api/imports", params={"importType": "products"}, headers={"X-Tenant-ID": TENANT_A}
        ).json()

        assert len(jobs) == 2
        assert {job["tenantId"] for job in jobs} == {TENANT_A}
        assert [job["importType"] for job in products] == ["products"]


class TestCancel:
    def test_cancel_pending_job(self, client, scheduled):
        job_id = _upload(client).json()["jobId"]

        response = client.post(f"/api/imports/{job_id}/cancel", headers={"X-Tenant-ID": TENANT_A})

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        # the delayed worker delivery is ignored
        assert _run(scheduled[0][1])["skipped"] is True

    def test_cancel_finished_job_conflicts(self, client, scheduled):
        job_id = _upload(client).json()["jobId"]
        _run(scheduled[0][1])

        response = client.post(f"/api/imports/{job_id}/cancel", headers={"X-Tenant-ID": TENANT_A})

        assert response.status_code == 409


class TestTemplates:
    @pytest.mark.parametrize("import_type", ["users", "products"])
    def test_template_parses_cleanly(self, client, import_type):
        response = client.get(f"/api/imports/templates/{import_type}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        strategy = get_strategy(import_type)
        rows = strategy.parse(response.text)
        assert len(rows) == len(strategy.template_samples)
        assert all(strategy.validate_row(row) == [] for row in rows)

    def test_unknown_template(self, client):
        assert client.get("/api/imports/templates/invoices").status_code == 404


def test_liveness(client):
    assert client.get("/health/live").json()["status"] == "ok"


def test_readiness_tolerates_redis_outage(client, monkeypatch):
    monkeypatch.setattr(
        health, "_check_redis", lambda url: {"status": "unhealthy", "message": "down"}
    )

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["database"]["status"] == "healthy"
    assert response.json()["checks"]["redis"]["status"] == "unhealthy"
