"""Endpoints for CSV import submission and status polling."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Literal

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)

from bulk_importer.api.dependencies.services import (
    get_blob_store,
    get_event_bus,
    get_ledger,
    get_status_reporter,
)
from bulk_importer.api.dependencies.tenant import get_tenant_id
from bulk_importer.api.schemas.job import ImportAccepted, JobStatus
from bulk_importer.core.config import get_settings
from bulk_importer.services.errors import JobNotFoundError, PersistenceError
from bulk_importer.services.event_bus import EventBus, ImportRequested
from bulk_importer.services.job_ledger import JobLedger
from bulk_importer.services.status_reporter import StatusReporter
from bulk_importer.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter()

# Rough bytes-per-row used for the submission-time estimate
BYTES_PER_ITEM = {"products": 800, "users": 500}


@router.post(
    "/{import_type}",
    summary="Start a CSV import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportAccepted,
)
async def submit_import(
    import_type: Literal["users", "products"],
    file: UploadFile = File(...),
    uploaded_by: str | None = Form(None, alias="uploadedBy"),
    tenant_id: str = Depends(get_tenant_id),
    ledger: JobLedger = Depends(get_ledger),
    blob_store: BlobStore = Depends(get_blob_store),
    event_bus: EventBus = Depends(get_event_bus),
) -> ImportAccepted:
    """Store the upload, record a pending job and enqueue it; returns immediately."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )
    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please upload a CSV file",
        )

    max_bytes = get_settings().max_upload_bytes
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
        )
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty",
        )

    try:
        blob_url = blob_store.save(
            BytesIO(content), f"{import_type}-imports-{tenant_id}-{file.filename}"
        )
    except OSError as exc:
        logger.error(f"Failed to store upload {file.filename}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save uploaded file",
        ) from exc

    try:
        job = ledger.create(
            tenant_id=tenant_id,
            import_type=import_type,
            file_name=file.filename,
            blob_url=blob_url,
            created_by=uploaded_by,
        )
    except PersistenceError as exc:
        blob_store.delete(blob_url)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create import job",
        ) from exc

    event = ImportRequested(
        job_id=job.id,
        blob_url=blob_url,
        tenant_id=tenant_id,
        file_name=file.filename,
        uploaded_by=job.created_by,
        import_type=import_type,
    )
    try:
        event_bus.publish(event)
    except Exception as exc:
        logger.error(f"Error enqueueing import job {job.id}: {exc}", exc_info=True)
        try:
            ledger.mark_failed(job.id, f"Import failed: could not enqueue job ({exc})")
        except PersistenceError:
            logger.error(f"Could not mark import job {job.id} failed after enqueue error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start import process",
        ) from exc

    logger.info(f"Created {import_type} import job {job.id} for file {file.filename}")
    return ImportAccepted(
        job_id=job.id,
        file_name=file.filename,
        file_size=len(content),
        estimated_item_count=len(content) // BYTES_PER_ITEM[import_type],
        message="Import job started. Poll the status endpoint for progress.",
    )


@router.get(
    "/{job_id}/status",
    summary="Check import progress",
    response_model=JobStatus,
)
async def get_import_status(
    job_id: str,
    tenant_id: str = Depends(get_tenant_id),
    reporter: StatusReporter = Depends(get_status_reporter),
) -> JobStatus:
    """Counters plus derived progress percent and time remaining."""
    try:
        return reporter.get_status(job_id, tenant_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Import job not found") from exc
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch import status",
        ) from exc
