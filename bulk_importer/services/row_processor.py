"""Validate one parsed CSV row and write exactly one domain record for it.

Each import type has a handler that names its required fields, the typed
row model the raw dictionary is validated into, and the write itself. The
processor turns every problem into a failed ``RowOutcome``; nothing raised
inside a row escapes ``RowProcessor.process``.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_core import PydanticCustomError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulk_importer.db.models import Customer, Product
from bulk_importer.services.errors import RowValidationError

logger = logging.getLogger(__name__)

# Data index 0 is the second line of the file
HEADER_OFFSET = 2

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def slugify(name: str) -> str:
    return _SLUG_INVALID.sub("", _SLUG_SPACES.sub("-", name.strip().lower()))


def _optional(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _to_decimal(raw: str) -> Decimal | None:
    """Non-negative finite decimal, or None when ``raw`` is not one."""
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


class ProductRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str
    price: Decimal
    sku: str = ""
    description: str = ""
    short_description: str | None = None
    compare_price: Decimal | None = None
    cost_price: Decimal | None = None
    weight: Decimal | None = None
    stock_quantity: int = 0

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v: Any) -> Decimal:
        raw = str(v).strip()
        price = _to_decimal(raw)
        if price is None:
            raise PydanticCustomError("invalid_price", "Invalid price: {raw}", {"raw": raw})
        return price

    @field_validator("compare_price", "cost_price", "weight", mode="before")
    @classmethod
    def parse_optional_decimal(cls, v: Any, info: ValidationInfo) -> Decimal | None:
        raw = _optional(v)
        if raw is None:
            return None
        value = _to_decimal(raw)
        if value is None:
            raise PydanticCustomError(
                "invalid_decimal",
                "Invalid {label}: {raw}",
                {"label": info.field_name.replace("_", " "), "raw": raw},
            )
        return value

    @field_validator("stock_quantity", mode="before")
    @classmethod
    def parse_stock_quantity(cls, v: Any) -> int:
        raw = _optional(v)
        if raw is None:
            return 0
        if not (raw.isascii() and raw.isdigit()):
            raise PydanticCustomError(
                "invalid_stock_quantity", "Stock quantity must be a valid non-negative number"
            )
        return int(raw)

    @field_validator("short_description", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        return _optional(v)


class UserRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str
    email: str
    buyer_ntn_cnic: str | None = None
    buyer_business_name: str | None = None
    buyer_province: str | None = None
    buyer_address: str | None = None
    buyer_registration_type: str | None = None

    @field_validator("email", mode="after")
    @classmethod
    def check_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise PydanticCustomError("invalid_email", "Invalid email format")
        return v.lower()

    @field_validator(
        "buyer_ntn_cnic",
        "buyer_business_name",
        "buyer_province",
        "buyer_address",
        "buyer_registration_type",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        return _optional(v)


@dataclass
class RowOutcome:
    row: int
    success: bool
    message: str | None = None
    entity: dict[str, Any] | None = None

    @classmethod
    def ok(cls, row: int, entity: dict[str, Any]) -> "RowOutcome":
        return cls(row=row, success=True, entity=entity)

    @classmethod
    def failure(cls, row: int, message: str) -> "RowOutcome":
        return cls(row=row, success=False, message=message)


@dataclass
class ChunkResult:
    successful: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)  # [{row, message}]
    created: list[dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.successful + self.failed

    def add(self, outcome: RowOutcome) -> None:
        if outcome.success:
            self.successful += 1
            if outcome.entity:
                self.created.append(outcome.entity)
        else:
            self.failed += 1
            self.errors.append({"row": outcome.row, "message": outcome.message})


class RowHandler(ABC):
    """Per-import-type schema and write."""

    import_type: ClassVar[str]
    required_fields: ClassVar[tuple[str, ...]]
    row_model: ClassVar[type[BaseModel]]

    def validate(self, raw: dict[str, Any]) -> BaseModel:
        """Build the typed row; the first failing rule becomes the row's error."""
        missing = [name for name in self.required_fields if not str(raw.get(name) or "").strip()]
        if missing:
            raise RowValidationError(
                f"Missing required fields ({', '.join(self.required_fields)})"
            )
        try:
            return self.row_model.model_validate(raw)
        except ValidationError as e:
            raise RowValidationError(e.errors()[0]["msg"]) from e

    def check(self, session: Session, row: BaseModel, tenant_id: str) -> None:
        """Hook for store-dependent checks that reject a valid-looking row."""

    @abstractmethod
    def write(self, session: Session, row: BaseModel, tenant_id: str) -> dict[str, Any]:
        """Add the domain record for ``row`` and return a summary of it."""


class ProductRowHandler(RowHandler):
    import_type = "products"
    required_fields = ("name", "price")
    row_model = ProductRow

    def write(self, session: Session, row: ProductRow, tenant_id: str) -> dict[str, Any]:
        product = Product(
            tenant_id=tenant_id,
            name=row.name,
            slug=slugify(row.name),
            price=row.price,
            sku=row.sku,
            description=row.description,
            short_description=row.short_description,
            compare_price=row.compare_price,
            cost_price=row.cost_price,
            weight=row.weight,
            stock_quantity=row.stock_quantity,
            is_active=True,
        )
        session.add(product)
        session.flush()
        return {"id": product.id, "name": product.name, "sku": product.sku or None}


class UserRowHandler(RowHandler):
    import_type = "users"
    required_fields = ("name", "email")
    row_model = UserRow

    def check(self, session: Session, row: UserRow, tenant_id: str) -> None:
        existing = session.scalar(
            select(Customer.id).where(
                Customer.tenant_id == tenant_id, Customer.email == row.email
            )
        )
        if existing:
            raise RowValidationError("User with this email already exists")

    def write(self, session: Session, row: UserRow, tenant_id: str) -> dict[str, Any]:
        customer = Customer(
            tenant_id=tenant_id,
            name=row.name,
            email=row.email,
            user_type="customer",
            buyer_ntn_cnic=row.buyer_ntn_cnic,
            buyer_business_name=row.buyer_business_name,
            buyer_province=row.buyer_province,
            buyer_address=row.buyer_address,
            buyer_registration_type=row.buyer_registration_type,
        )
        session.add(customer)
        session.flush()
        return {"id": customer.id, "name": customer.name, "email": customer.email}


HANDLERS: dict[str, type[RowHandler]] = {
    ProductRowHandler.import_type: ProductRowHandler,
    UserRowHandler.import_type: UserRowHandler,
}


class RowProcessor:
    """Classify rows into success/failure, writing one record per success."""

    def __init__(self, handler: RowHandler):
        self.handler = handler

    @classmethod
    def for_type(cls, import_type: str) -> "RowProcessor":
        try:
            return cls(HANDLERS[import_type]())
        except KeyError:
            raise ValueError(f"Unsupported import type: {import_type}") from None

    def process(
        self, session: Session, raw: dict[str, Any], tenant_id: str, row_number: int
    ) -> RowOutcome:
        try:
            row = self.handler.validate(raw)
            # Savepoint: a failed lookup or write discards this row only
            with session.begin_nested():
                self.handler.check(session, row, tenant_id)
                entity = self.handler.write(session, row, tenant_id)
        except RowValidationError as e:
            return RowOutcome.failure(row_number, str(e))
        except SQLAlchemyError as e:
            logger.warning(f"Row {row_number}: write failed: {e}")
            return RowOutcome.failure(row_number, f"Failed to save row: {e.__class__.__name__}")
        except Exception as e:
            logger.error(f"Row {row_number}: unexpected error: {e}", exc_info=True)
            return RowOutcome.failure(row_number, str(e) or "Unknown error occurred")
        return RowOutcome.ok(row_number, entity)

    def process_chunk(
        self,
        session: Session,
        rows: list[dict[str, Any]],
        tenant_id: str,
        start_index: int,
    ) -> ChunkResult:
        """Process ``rows`` in order; ``start_index`` is the first row's data index."""
        result = ChunkResult()
        for offset, raw in enumerate(rows):
            result.add(self.process(session, raw, tenant_id, start_index + offset + HEADER_OFFSET))
        return result
