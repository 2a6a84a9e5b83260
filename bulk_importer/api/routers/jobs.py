"""Tenant job listing and live progress streaming."""
from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from bulk_importer.api.dependencies.services import get_status_reporter
from bulk_importer.api.dependencies.tenant import get_tenant_id
from bulk_importer.api.schemas.job import JobStatus
from bulk_importer.services.errors import JobNotFoundError
from bulk_importer.services.status_reporter import StatusReporter

router = APIRouter()

STREAM_INTERVAL_SECONDS = 5
# Give up after this many polls without any change (5 minutes at 5s intervals)
STREAM_MAX_IDLE_POLLS = 60


@router.get(
    "/",
    summary="List the tenant's import jobs",
    response_model=list[JobStatus],
)
async def list_jobs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    status: str | None = Query(
        None, description="Filter by status (pending, processing, completed, failed)"
    ),
    tenant_id: str = Depends(get_tenant_id),
    reporter: StatusReporter = Depends(get_status_reporter),
) -> list[JobStatus]:
    """Newest first."""
    try:
        return reporter.list_jobs(tenant_id, status=status, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get(
    "/{job_id}/stream",
    summary="Server-Sent Events stream for real-time progress",
)
async def stream_job_progress(
    job_id: str,
    tenant_id: str = Depends(get_tenant_id),
    reporter: StatusReporter = Depends(get_status_reporter),
) -> StreamingResponse:
    """Stream the status projection until the job completes or fails.

    Example client usage:
    ```javascript
    const eventSource = new EventSource('/api/jobs/{job_id}/stream');
    eventSource.onmessage = (e) => {
      const data = JSON.parse(e.data);
      console.log('Progress:', data.progressPercent);
    };
    ```
    """
    try:
        reporter.get_status(job_id, tenant_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Import job not found") from e

    async def event_generator() -> AsyncGenerator[str, None]:
        last_processed = -1
        idle_polls = 0
        while True:
            try:
                job_status = reporter.get_status(job_id, tenant_id)
            except JobNotFoundError:
                yield 'event: error\ndata: {"error": "Job not found"}\n\n'
                break

            if job_status.processed_records != last_processed:
                last_processed = job_status.processed_records
                idle_polls = 0
            else:
                idle_polls += 1

            yield f"data: {job_status.model_dump_json(by_alias=True)}\n\n"

            if job_status.status in ("completed", "failed"):
                yield "event: close\ndata: {}\n\n"
                break
            if idle_polls > STREAM_MAX_IDLE_POLLS:
                yield "event: timeout\ndata: {}\n\n"
                break

            await asyncio.sleep(STREAM_INTERVAL_SECONDS)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
