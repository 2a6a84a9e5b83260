"""SQLAlchemy model for tenant customers (the ``users`` import target)."""

import uuid

from sqlalchemy import Column, Index, String, Text, func
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base


class Customer(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False)
    user_type = Column(String(32), nullable=False, default="customer")
    buyer_ntn_cnic = Column(String(64))
    buyer_business_name = Column(String(255))
    buyer_province = Column(String(128))
    buyer_address = Column(Text)
    buyer_registration_type = Column(String(64))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_users_tenant_email", tenant_id, email),)
