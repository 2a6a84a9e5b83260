"""Import job payloads exposed to polling clients."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobError(CamelModel):
    message: str
    row: int | None = None


class JobStatus(CamelModel):
    id: str
    type: str = Field(..., description="users|products")
    file_name: str
    status: str = Field(..., description="pending|processing|completed|failed")
    total_records: int = 0
    processed_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    progress_percent: int = Field(0, description="0-100 range for UI progress bars")
    estimated_time_remaining: int | None = Field(
        None, description="Seconds left, only while processing"
    )
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    errors: list[JobError] = Field(default_factory=list)
    results: dict[str, Any] | None = None


class ImportAccepted(CamelModel):
    job_id: str
    file_name: str
    file_size: int
    estimated_item_count: int
    message: str
