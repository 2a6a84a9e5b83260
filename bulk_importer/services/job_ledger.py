"""Persistent record of import jobs and their step checkpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bulk_importer.db.models.import_job import IMPORT_TYPES, JOB_STATUSES, ImportJob
from bulk_importer.services.errors import JobNotFoundError, PersistenceError

logger = logging.getLogger(__name__)

StepFn = Callable[[Session, ImportJob], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobLedger:
    """Reads and single-writer updates of ``ImportJob`` rows.

    Every mutation after creation goes through ``run_step``, which applies
    the step's changes and appends the step name to ``completed_steps`` in
    one transaction. A step already recorded, or any step against a
    terminal job, is skipped.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self.clock = clock

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"Job ledger transaction failed: {exc}", exc_info=True)
            raise PersistenceError(f"Job ledger update failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create(
        self,
        *,
        tenant_id: str,
        import_type: str,
        file_name: str,
        blob_url: str,
        created_by: str | None = None,
    ) -> ImportJob:
        if import_type not in IMPORT_TYPES:
            raise ValueError(f"Unsupported import type: {import_type}")
        with self._transaction() as session:
            job = ImportJob(
                tenant_id=tenant_id,
                type=import_type,
                file_name=file_name,
                blob_url=blob_url,
                status="pending",
                errors=[],
                completed_steps=[],
                created_by=created_by or "unknown",
                created_at=self.clock(),
            )
            session.add(job)
            session.flush()
            session.refresh(job)
            session.expunge(job)
        logger.info(f"Created {import_type} import job {job.id} for tenant {tenant_id}")
        return job

    def find(self, job_id: str) -> ImportJob | None:
        """Detached snapshot of the job, or None."""
        with self._transaction() as session:
            job = session.get(ImportJob, job_id)
            if job is not None:
                session.expunge(job)
            return job

    def get(self, job_id: str, tenant_id: str | None = None) -> ImportJob:
        """Like ``find`` but scoped to ``tenant_id`` and raising when absent."""
        job = self.find(job_id)
        if job is None or (tenant_id is not None and job.tenant_id != tenant_id):
            raise JobNotFoundError(job_id)
        return job

    def list_for_tenant(
        self, tenant_id: str, status: str | None = None, limit: int = 50
    ) -> list[ImportJob]:
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status: {status}")
        query = select(ImportJob).where(ImportJob.tenant_id == tenant_id)
        if status:
            query = query.where(ImportJob.status == status)
        query = query.order_by(ImportJob.created_at.desc()).limit(limit)
        with self._transaction() as session:
            jobs = list(session.scalars(query).all())
            for job in jobs:
                session.expunge(job)
            return jobs

    def run_step(self, job_id: str, step: str, apply: StepFn) -> bool:
        """Apply ``apply`` and checkpoint ``step``; return False when skipped."""
        with self._transaction() as session:
            job = session.get(ImportJob, job_id, with_for_update=True)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.is_terminal:
                logger.info(f"Job {job_id} is {job.status}; skipping step {step}")
                return False
            if step in (job.completed_steps or []):
                logger.info(f"Job {job_id}: step {step} already completed, skipping")
                return False
            apply(session, job)
            job.completed_steps = [*(job.completed_steps or []), step]
        logger.debug(f"Job {job_id}: step {step} checkpointed")
        return True

    # Step effects

    def mark_processing(self, session: Session, job: ImportJob) -> None:
        job.status = "processing"
        job.started_at = self.clock()

    def record_total(self, job: ImportJob, total: int, chunk_size: int) -> None:
        job.total_records = total
        job.chunk_size = chunk_size

    def record_chunk(
        self,
        job: ImportJob,
        successful: int,
        failed: int,
        errors: list[dict[str, Any]],
        created: list[dict[str, Any]],
        created_cap: int = 100,
    ) -> None:
        job.successful_records += successful
        job.failed_records += failed
        job.processed_records = job.successful_records + job.failed_records
        if errors:
            job.errors = [*(job.errors or []), *errors]
        kept = list((job.results or {}).get("created", []))
        if len(kept) < created_cap and created:
            kept.extend(created[: created_cap - len(kept)])
        job.results = {**(job.results or {}), "created": kept}

    def mark_completed(self, session: Session, job: ImportJob) -> None:
        job.status = "completed"
        job.completed_at = self.clock()
        job.results = {
            "successful": job.successful_records,
            "failed": job.failed_records,
            "created": list((job.results or {}).get("created", [])),
        }

    def mark_failed(self, job_id: str, message: str) -> bool:
        """Move a non-terminal job to ``failed`` with a single error entry."""

        def apply(session: Session, job: ImportJob) -> None:
            job.status = "failed"
            job.completed_at = self.clock()
            job.errors = [{"message": message}]

        return self.run_step(job_id, "mark-failed", apply)
