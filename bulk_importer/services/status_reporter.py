"""Read-only progress projection of a job ledger entry."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from bulk_importer.api.schemas.job import JobError, JobStatus
from bulk_importer.db.models.import_job import ImportJob
from bulk_importer.services.job_ledger import JobLedger, utcnow


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def progress_percent(processed: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half rounds up
    return math.floor(processed / total * 100 + 0.5)


def estimate_time_remaining(job: ImportJob, now: datetime) -> int | None:
    """Seconds left at the average rate so far, or None when unknowable."""
    started_at = as_utc(job.started_at)
    if job.status != "processing" or not job.processed_records or started_at is None:
        return None
    elapsed = (now - started_at).total_seconds()
    if elapsed <= 0:
        return None
    rate = job.processed_records / elapsed
    remaining = max(job.total_records - job.processed_records, 0)
    return math.ceil(remaining / rate)


def project(job: ImportJob, now: datetime) -> JobStatus:
    return JobStatus(
        id=job.id,
        type=job.type,
        file_name=job.file_name,
        status=job.status,
        total_records=job.total_records or 0,
        processed_records=job.processed_records or 0,
        successful_records=job.successful_records or 0,
        failed_records=job.failed_records or 0,
        progress_percent=progress_percent(job.processed_records or 0, job.total_records or 0),
        estimated_time_remaining=estimate_time_remaining(job, now),
        created_at=as_utc(job.created_at),
        started_at=as_utc(job.started_at),
        completed_at=as_utc(job.completed_at),
        created_by=job.created_by,
        errors=[JobError.model_validate(error) for error in job.errors or []],
        results=job.results,
    )


class StatusReporter:
    def __init__(self, ledger: JobLedger):
        self.ledger = ledger

    def get_status(
        self, job_id: str, tenant_id: str, now: datetime | None = None
    ) -> JobStatus:
        """Raises JobNotFoundError for unknown ids and other tenants' jobs."""
        job = self.ledger.get(job_id, tenant_id=tenant_id)
        return project(job, now or utcnow())

    def list_jobs(
        self, tenant_id: str, status: str | None = None, limit: int = 50
    ) -> list[JobStatus]:
        now = utcnow()
        return [project(job, now) for job in self.ledger.list_for_tenant(tenant_id, status, limit)]
