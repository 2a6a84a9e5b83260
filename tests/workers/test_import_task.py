from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from bulk_importer.services.errors import PersistenceError
from bulk_importer.workers.tasks import import_jobs
from bulk_importer.workers.tasks.import_jobs import run_import_task

EVENT = {
    "job_id": "job-1",
    "blob_url": "https://blobs.test/products.csv",
    "tenant_id": "tenant-a",
    "file_name": "products.csv",
    "uploaded_by": "admin@example.com",
    "import_type": "products",
}


@pytest.fixture
def slots():
    slots = MagicMock()
    with patch.object(import_jobs, "get_import_slots", return_value=slots):
        yield slots


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    with patch.object(import_jobs, "build_orchestrator", return_value=orchestrator):
        yield orchestrator


def test_runs_import_and_releases_slot(slots, orchestrator):
    slots.acquire.return_value = True
    orchestrator.run.return_value = {"job_id": "job-1", "status": "completed"}

    assert run_import_task(EVENT) == {"job_id": "job-1", "status": "completed"}

    [request], _ = orchestrator.run.call_args
    assert request.job_id == "job-1"
    assert request.import_type == "products"
    slots.acquire.assert_called_once_with("job-1")
    slots.release.assert_called_once_with("job-1")


def test_waits_for_a_free_slot(slots, orchestrator):
    slots.acquire.return_value = False

    with patch.object(run_import_task, "retry", side_effect=Retry()) as retry:
        with pytest.raises(Retry):
            run_import_task(EVENT)

    retry.assert_called_once_with(countdown=import_jobs.SLOT_WAIT_SECONDS)
    orchestrator.run.assert_not_called()
    slots.release.assert_not_called()


def test_slot_is_released_when_import_raises(slots, orchestrator):
    slots.acquire.return_value = True
    orchestrator.run.side_effect = RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_import_task(EVENT)

    slots.release.assert_called_once_with("job-1")


def test_invalid_event_is_rejected(slots, orchestrator):
    with pytest.raises(ValueError):
        run_import_task({**EVENT, "import_type": "orders"})

    slots.acquire.assert_not_called()


def test_slot_waits_are_not_capped_by_the_ledger_retry_budget(slots, orchestrator):
    # Well past PERSISTENCE_MAX_RETRIES deliveries spent waiting for a slot
    slots.acquire.side_effect = [False, True]
    orchestrator.run.return_value = {"job_id": "job-1", "status": "completed"}

    result = run_import_task.apply(kwargs={"event": EVENT}, retries=50, throw=True)

    assert result.get() == {"job_id": "job-1", "status": "completed"}
    assert slots.acquire.call_count == 2
    orchestrator.run.assert_called_once()


def test_ledger_errors_back_off_and_retry(slots, orchestrator):
    slots.acquire.return_value = True
    orchestrator.run.side_effect = [
        PersistenceError("ledger unavailable"),
        {"job_id": "job-1", "status": "completed"},
    ]

    result = run_import_task.apply(kwargs={"event": EVENT}, retries=50, throw=True)

    assert result.get() == {"job_id": "job-1", "status": "completed"}
    assert orchestrator.run.call_count == 2
    assert slots.release.call_count == 2


def test_ledger_retries_are_bounded(slots, orchestrator):
    slots.acquire.return_value = True
    orchestrator.run.side_effect = PersistenceError("ledger unavailable")

    with pytest.raises(PersistenceError):
        run_import_task.apply(
            kwargs={"event": EVENT, "persistence_retries": import_jobs.PERSISTENCE_MAX_RETRIES},
            throw=True,
        )

    orchestrator.run.assert_called_once()
    slots.release.assert_called_once_with("job-1")
