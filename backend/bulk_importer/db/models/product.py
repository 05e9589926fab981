"""SQLAlchemy models for tenant products and their stock records."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base, JSONType


def _uuid() -> str:
    return str(uuid.uuid4())


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(160), nullable=False)
    sku = Column(String(64))
    price = Column(Numeric(12, 2), nullable=False)
    description = Column(Text)
    short_description = Column(Text)
    compare_price = Column(Numeric(12, 2))
    cost_price = Column(Numeric(12, 2))
    category_id = Column(String(64))
    subcategory_id = Column(String(64))
    supplier_id = Column(String(64))
    tags = Column(JSONType)
    weight = Column(Numeric(10, 3))
    is_featured = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_digital = Column(Boolean, nullable=False, default=False)
    requires_shipping = Column(Boolean, nullable=False, default=True)
    taxable = Column(Boolean, nullable=False, default=True)

    # Tax and discount
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    price_including_tax = Column(Numeric(12, 2), nullable=False, default=0)
    price_excluding_tax = Column(Numeric(12, 2), nullable=False, default=0)
    extra_tax = Column(Numeric(12, 2), nullable=False, default=0)
    further_tax = Column(Numeric(12, 2), nullable=False, default=0)
    fed_payable_tax = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)

    meta_title = Column(String(255))
    meta_description = Column(Text)
    hs_code = Column(String(32))
    product_type = Column(String(32), nullable=False, default="simple")
    stock_management_type = Column(String(32), nullable=False, default="quantity")
    price_per_unit = Column(Numeric(12, 2))
    base_weight_unit = Column(String(16), nullable=False, default="grams")

    # Optional strain attributes
    thc = Column(Numeric(6, 2))
    cbd = Column(Numeric(6, 2))
    difficulty = Column(String(64))
    flowering_time = Column(String(64))
    yield_amount = Column(String(64))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        Index("ix_products_tenant_sku", tenant_id, sku, unique=True),
        Index("ix_products_tenant_slug", tenant_id, slug),
    )


class ProductInventory(Base):
    __tablename__ = "product_inventory"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    reorder_point = Column(Integer, nullable=False, default=0)
    reorder_quantity = Column(Integer, nullable=False, default=0)
    location = Column(String(255))
    supplier_id = Column(String(64))
    last_restock_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(64), nullable=False, index=True)
    inventory_id = Column(
        String(36), ForeignKey("product_inventory.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    movement_type = Column(String(16), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    reason = Column(String(64), nullable=False)
    location = Column(String(255))
    reference = Column(String(64))
    notes = Column(Text)
    cost_price = Column(Numeric(12, 2))
    supplier_id = Column(String(64))
    processed_by = Column(String(64))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
