"""Database models package."""
from bulk_importer.db.models.import_job import ImportJob, ImportJobError
from bulk_importer.db.models.product import Product, ProductInventory, StockMovement
from bulk_importer.db.models.user import User, UserLoyaltyPoints

__all__ = [
    "ImportJob",
    "ImportJobError",
    "Product",
    "ProductInventory",
    "StockMovement",
    "User",
    "UserLoyaltyPoints",
]
