"""Import job state machine: pending -> processing -> completed | failed.

The run is split into named steps, each checkpointed in the job ledger:

    mark-processing      status=processing, started_at
    record-total         total_records from the parsed file
    process-chunk-<n>    row writes + counter increments for chunk n
    mark-completed       status=completed, completed_at, results

A re-delivered or retried event walks the same steps and skips every one the
ledger already records, so rows written by a finished chunk are never written
again. The source file is re-fetched whenever chunk steps remain.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from functools import partial
from typing import Any

from sqlalchemy.orm import Session

from bulk_importer.db.models.import_job import ImportJob
from bulk_importer.services.csv_ingest import CsvIngestor
from bulk_importer.services.event_bus import ImportRequested
from bulk_importer.services.job_ledger import JobLedger
from bulk_importer.services.row_processor import RowProcessor

logger = logging.getLogger(__name__)

STEP_MARK_PROCESSING = "mark-processing"
STEP_RECORD_TOTAL = "record-total"
STEP_MARK_COMPLETED = "mark-completed"

DEFAULT_CHUNK_SIZE = 50


def chunk_step(index: int) -> str:
    return f"process-chunk-{index}"


class ImportOrchestrator:
    def __init__(
        self,
        ledger: JobLedger,
        ingestor: CsvIngestor,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        processor_factory: Callable[[str], RowProcessor] = RowProcessor.for_type,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.ledger = ledger
        self.ingestor = ingestor
        self.chunk_size = chunk_size
        self.processor_factory = processor_factory

    def run(self, event: ImportRequested) -> dict[str, Any] | None:
        """Drive the job to a terminal state; re-raise process-level faults."""
        job = self.ledger.find(event.job_id)
        if job is None:
            logger.warning(f"Import job {event.job_id} not found; dropping event")
            return None
        if job.tenant_id != event.tenant_id:
            logger.warning(
                f"Event tenant {event.tenant_id} does not own job {job.id}; dropping event"
            )
            return None
        if job.is_terminal:
            logger.info(f"Import job {job.id} already {job.status}; nothing to do")
            return self._summary(job)

        self.ledger.run_step(job.id, STEP_MARK_PROCESSING, self.ledger.mark_processing)

        try:
            self._process(job)
        except Exception as exc:
            logger.error(f"Import job {job.id} failed: {exc}", exc_info=True)
            self._mark_failed(job.id, exc)
            raise

        return self._summary(self.ledger.get(job.id))

    def _process(self, job: ImportJob) -> None:
        rows: list[dict[str, str]] | None = None

        if STEP_RECORD_TOTAL not in job.completed_steps:
            rows = self.ingestor.ingest(job.blob_url, job.type)
            total = len(rows)
            self.ledger.run_step(
                job.id,
                STEP_RECORD_TOTAL,
                lambda session, ledger_job: self.ledger.record_total(
                    ledger_job, total, self.chunk_size
                ),
            )

        job = self.ledger.get(job.id)
        chunk_size = job.chunk_size or self.chunk_size
        chunk_count = math.ceil(job.total_records / chunk_size)
        pending = [
            index
            for index in range(chunk_count)
            if chunk_step(index) not in job.completed_steps
        ]

        if pending:
            if rows is None:
                rows = self.ingestor.ingest(job.blob_url, job.type)
            processor = self.processor_factory(job.type)
            for index in pending:
                start = index * chunk_size
                chunk = rows[start : start + chunk_size]
                self.ledger.run_step(
                    job.id,
                    chunk_step(index),
                    partial(self._process_chunk, processor, chunk, start),
                )
                logger.info(
                    f"Import job {job.id}: chunk {index + 1}/{chunk_count} processed"
                )

        self.ledger.run_step(job.id, STEP_MARK_COMPLETED, self.ledger.mark_completed)

    def _process_chunk(
        self,
        processor: RowProcessor,
        chunk: list[dict[str, str]],
        start: int,
        session: Session,
        job: ImportJob,
    ) -> None:
        result = processor.process_chunk(session, chunk, job.tenant_id, start)
        self.ledger.record_chunk(
            job, result.successful, result.failed, result.errors, result.created
        )

    def _mark_failed(self, job_id: str, exc: Exception) -> None:
        try:
            self.ledger.mark_failed(job_id, f"Import failed: {exc}")
        except Exception as ledger_exc:
            # The job stays in processing; the original error is re-raised by the caller.
            logger.error(
                f"Could not mark import job {job_id} failed: {ledger_exc}", exc_info=True
            )

    @staticmethod
    def _summary(job: ImportJob) -> dict[str, Any]:
        return {
            "job_id": job.id,
            "status": job.status,
            "total": job.total_records,
            "processed": job.processed_records,
            "successful": job.successful_records,
            "failed": job.failed_records,
        }
