"""Publishing "start import" events onto the task queue."""

from __future__ import annotations

import logging
from typing import Literal, Protocol

from celery import Celery
from pydantic import BaseModel

logger = logging.getLogger(__name__)

RUN_IMPORT_TASK = "bulk_importer.workers.tasks.run_import"
IMPORTS_QUEUE = "imports"


class ImportRequested(BaseModel):
    job_id: str
    blob_url: str
    tenant_id: str
    file_name: str
    uploaded_by: str = "unknown"
    import_type: Literal["users", "products"]


class EventBus(Protocol):
    def publish(self, event: ImportRequested) -> str: ...


class CeleryEventBus:
    """Event bus backed by a Celery app owned by the process entry point."""

    def __init__(self, celery_app: Celery, queue: str = IMPORTS_QUEUE):
        self.celery_app = celery_app
        self.queue = queue

    def publish(self, event: ImportRequested) -> str:
        result = self.celery_app.send_task(
            RUN_IMPORT_TASK,
            kwargs={"event": event.model_dump()},
            queue=self.queue,
        )
        logger.info(f"Enqueued import job {event.job_id} as task {result.id}")
        return result.id
