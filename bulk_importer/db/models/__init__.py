"""Database models package."""
from bulk_importer.db.models.customer import Customer
from bulk_importer.db.models.import_job import ImportJob
from bulk_importer.db.models.product import Product

__all__ = ["Customer", "ImportJob", "Product"]
