import json

import pytest
from fastapi.testclient import TestClient

from bulk_importer.api.dependencies.services import get_ledger
from bulk_importer.core.config import get_settings
from bulk_importer.main import create_app
from bulk_importer.services.csv_ingest import CsvIngestor
from bulk_importer.services.orchestrator import ImportOrchestrator
from bulk_importer.storage.blob_store import LocalBlobStore

TENANT_HEADERS = {"X-Tenant-ID": "tenant-a"}
OTHER_TENANT_HEADERS = {"X-Tenant-ID": "tenant-b"}
PRODUCTS_CSV = b"name,price\nWidget,9.99\nGadget,4.50\n"


class RecordingEventBus:
    def __init__(self, error=None):
        self.events = []
        self.error = error

    def publish(self, event):
        if self.error:
            raise self.error
        self.events.append(event)
        return f"task-{len(self.events)}"


@pytest.fixture
def event_bus():
    return RecordingEventBus()


@pytest.fixture
def client(ledger, event_bus, tmp_path):
    app = create_app(
        settings=get_settings(),
        event_bus=event_bus,
        blob_store=LocalBlobStore(tmp_path / "blobs"),
    )
    app.dependency_overrides[get_ledger] = lambda: ledger
    with TestClient(app) as test_client:
        yield test_client


def upload(client, content=PRODUCTS_CSV, name="products.csv", import_type="products", headers=TENANT_HEADERS):
    return client.post(
        f"/api/imports/{import_type}",
        files={"file": (name, content, "text/csv")},
        data={"uploadedBy": "admin@example.com"},
        headers=headers,
    )


def test_submit_creates_pending_job_and_publishes_event(client, ledger, event_bus):
    response = upload(client)

    assert response.status_code == 202
    body = response.json()
    assert body["fileName"] == "products.csv"
    assert body["fileSize"] == len(PRODUCTS_CSV)
    assert body["estimatedItemCount"] == len(PRODUCTS_CSV) // 800

    job = ledger.get(body["jobId"], tenant_id="tenant-a")
    assert job.status == "pending"
    assert job.type == "products"
    assert job.created_by == "admin@example.com"

    [event] = event_bus.events
    assert event.job_id == job.id
    assert event.blob_url == job.blob_url
    assert event.tenant_id == "tenant-a"
    assert event.import_type == "products"
    assert event.uploaded_by == "admin@example.com"


def test_submit_requires_tenant(client):
    assert upload(client, headers={}).status_code == 400


def test_submit_rejects_non_csv(client, event_bus):
    response = upload(client, name="products.xlsx")
    assert response.status_code == 400
    assert event_bus.events == []


def test_submit_rejects_empty_file(client):
    assert upload(client, content=b"").status_code == 400


def test_submit_rejects_oversize_file(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_upload_bytes", 10)
    assert upload(client).status_code == 413


def test_submit_rejects_unknown_import_type(client):
    assert upload(client, import_type="orders").status_code == 422


def test_publish_failure_marks_job_failed(ledger, tmp_path):
    app = create_app(
        settings=get_settings(),
        event_bus=RecordingEventBus(error=ConnectionError("broker down")),
        blob_store=LocalBlobStore(tmp_path),
    )
    app.dependency_overrides[get_ledger] = lambda: ledger
    with TestClient(app) as client:
        response = upload(client)

    assert response.status_code == 500
    [job] = ledger.list_for_tenant("tenant-a")
    assert job.status == "failed"


def test_status_is_tenant_scoped(client):
    job_id = upload(client).json()["jobId"]

    response = client.get(f"/api/imports/{job_id}/status", headers=TENANT_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending"
    assert body["progressPercent"] == 0
    assert body["estimatedTimeRemaining"] is None

    foreign = client.get(f"/api/imports/{job_id}/status", headers=OTHER_TENANT_HEADERS)
    assert foreign.status_code == 404
    assert "tenant-a" not in foreign.text


def test_submitted_job_runs_to_completion(client, ledger, event_bus):
    upload(client, content=b'name,price\nWidget,9.99\n"",""\nGadget,-5\n')
    [event] = event_bus.events

    ImportOrchestrator(ledger, CsvIngestor()).run(event)

    body = client.get(f"/api/imports/{event.job_id}/status", headers=TENANT_HEADERS).json()
    assert body["status"] == "completed"
    assert body["progressPercent"] == 100
    assert (body["totalRecords"], body["successfulRecords"], body["failedRecords"]) == (3, 1, 2)
    assert [error["row"] for error in body["errors"]] == [3, 4]


def test_list_jobs_for_tenant(client):
    upload(client)
    upload(client, content=b"name,email\nAli,ali@example.com\n", import_type="users")
    upload(client, headers=OTHER_TENANT_HEADERS)

    response = client.get("/api/jobs/", headers=TENANT_HEADERS)
    assert response.status_code == 200
    assert sorted(job["type"] for job in response.json()) == ["products", "users"]

    assert client.get("/api/jobs/?status=bogus", headers=TENANT_HEADERS).status_code == 400


def test_stream_ends_for_terminal_job(client, ledger, event_bus):
    upload(client)
    [event] = event_bus.events
    ImportOrchestrator(ledger, CsvIngestor()).run(event)

    with client.stream("GET", f"/api/jobs/{event.job_id}/stream", headers=TENANT_HEADERS) as response:
        assert response.status_code == 200
        text = "".join(response.iter_text())

    data_lines = [line[len("data: "):] for line in text.splitlines() if line.startswith("data: {\"")]
    assert json.loads(data_lines[0])["status"] == "completed"
    assert "event: close" in text


def test_stream_unknown_job_is_404(client):
    assert client.get("/api/jobs/missing/stream", headers=TENANT_HEADERS).status_code == 404


def test_health_live(client):
    assert client.get("/health/live").json()["status"] == "ok"
