"""Job ledger row: one record per submitted import file."""

import uuid

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base, JSONType

JOB_STATUSES = ("pending", "processing", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})
IMPORT_TYPES = ("users", "products")


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    file_name = Column(String(255), nullable=False)
    blob_url = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    total_records = Column(Integer, nullable=False, default=0)
    processed_records = Column(Integer, nullable=False, default=0)
    successful_records = Column(Integer, nullable=False, default=0)
    failed_records = Column(Integer, nullable=False, default=0)
    errors = Column(JSONType, nullable=False, default=list)
    results = Column(JSONType)
    completed_steps = Column(JSONType, nullable=False, default=list)
    chunk_size = Column(Integer)
    created_by = Column(String(255), nullable=False, default="unknown")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
