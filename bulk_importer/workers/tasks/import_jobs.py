"""Celery task running one import job through the orchestrator."""

from __future__ import annotations

import logging
from typing import Any, NoReturn

from celery import Task
from celery.utils.time import get_exponential_backoff_interval

from bulk_importer.core.config import get_settings
from bulk_importer.db.session import SessionLocal
from bulk_importer.services.csv_ingest import CsvIngestor
from bulk_importer.services.errors import PersistenceError
from bulk_importer.services.event_bus import RUN_IMPORT_TASK, ImportRequested
from bulk_importer.services.job_ledger import JobLedger
from bulk_importer.services.orchestrator import ImportOrchestrator
from bulk_importer.utils.redis_client import get_import_slots
from bulk_importer.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Seconds to wait before trying again when every import slot is taken
SLOT_WAIT_SECONDS = 15
# Waiting for a slot never exhausts the task; only ledger errors are budgeted
SLOT_WAIT_MAX_RETRIES = 2**31 - 1
PERSISTENCE_MAX_RETRIES = 5
PERSISTENCE_BACKOFF_MAX_SECONDS = 600


def build_orchestrator() -> ImportOrchestrator:
    settings = get_settings()
    return ImportOrchestrator(
        JobLedger(SessionLocal),
        CsvIngestor(timeout=settings.fetch_timeout_seconds),
        chunk_size=settings.import_chunk_size,
    )


def _retry_after_persistence_error(
    task: Task, event: dict[str, Any], attempts: int, exc: PersistenceError
) -> NoReturn:
    if attempts >= PERSISTENCE_MAX_RETRIES:
        logger.error(f"Giving up after {attempts} ledger retries: {exc}")
        raise exc
    countdown = get_exponential_backoff_interval(
        factor=1,
        retries=attempts,
        maximum=PERSISTENCE_BACKOFF_MAX_SECONDS,
        full_jitter=True,
    )
    logger.warning(f"Ledger unavailable ({exc}); retrying in {countdown}s")
    raise task.retry(
        exc=exc,
        countdown=countdown,
        args=(),
        kwargs={"event": event, "persistence_retries": attempts + 1},
    )


@celery_app.task(bind=True, name=RUN_IMPORT_TASK, max_retries=SLOT_WAIT_MAX_RETRIES)
def run_import_task(
    self, event: dict[str, Any], persistence_retries: int = 0
) -> dict[str, Any] | None:
    """Run the import once an import slot is free; ledger failures back off and retry."""
    request = ImportRequested.model_validate(event)
    slots = get_import_slots()
    try:
        acquired = slots.acquire(request.job_id)
    except PersistenceError as exc:
        _retry_after_persistence_error(self, event, persistence_retries, exc)
    if not acquired:
        raise self.retry(countdown=SLOT_WAIT_SECONDS)

    logger.info(
        f"Starting {request.import_type} import job {request.job_id} "
        f"(delivery {self.request.retries + 1})"
    )
    try:
        return build_orchestrator().run(request)
    except PersistenceError as exc:
        _retry_after_persistence_error(self, event, persistence_retries, exc)
    finally:
        slots.release(request.job_id)
