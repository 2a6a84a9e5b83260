"""SQLAlchemy model for product records."""

import uuid

from sqlalchemy import Boolean, Column, Integer, Numeric, String, Text, func
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    sku = Column(String(64), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    short_description = Column(Text, nullable=True)
    compare_price = Column(Numeric(12, 2), nullable=True)
    cost_price = Column(Numeric(12, 2), nullable=True)
    weight = Column(Numeric(10, 3), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
