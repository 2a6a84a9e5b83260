"""Request-scoped access to the job ledger and its collaborators."""

from fastapi import Depends, Request

from bulk_importer.db.session import SessionLocal
from bulk_importer.services.event_bus import EventBus
from bulk_importer.services.job_ledger import JobLedger
from bulk_importer.services.status_reporter import StatusReporter
from bulk_importer.storage.blob_store import BlobStore


def get_ledger() -> JobLedger:
    """FastAPI dependency returning a ledger bound to the application's sessions."""
    return JobLedger(SessionLocal)


def get_status_reporter(ledger: JobLedger = Depends(get_ledger)) -> StatusReporter:
    return StatusReporter(ledger)


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store
