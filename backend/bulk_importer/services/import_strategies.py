"""Per-entity import behaviour plugged into the shared chunk/job orchestration.

Each strategy owns its column alias table, row type, validation rules,
tenant-scoped duplicate check and the grouped write (entity plus the
auxiliary records that must accompany it). The runner and chunk processor
only ever talk to the ``ImportStrategy`` interface.
"""

from __future__ import annotations

import re
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bulk_importer.core.config import get_settings
from bulk_importer.db.models.product import Product, ProductInventory, StockMovement
from bulk_importer.db.models.user import User, UserLoyaltyPoints
from bulk_importer.utils.csv_parser import ParsedCSV, parse_csv
from bulk_importer.utils.csv_validator import (
    parse_bool,
    parse_decimal,
    parse_int,
    validate_product_row,
    validate_user_row,
)

RowT = TypeVar("RowT")


class UnknownImportTypeError(KeyError):
    """Raised for an import type with no registered strategy."""


@dataclass
class UserImportRow:
    name: str = ""
    email: str = ""
    buyer_ntn_cnic: str = ""
    buyer_business_name: str = ""
    buyer_province: str = ""
    buyer_address: str = ""
    buyer_registration_type: str = ""


@dataclass
class ProductImportRow:
    name: str = ""
    price: str = ""
    slug: str = ""
    description: str = ""
    short_description: str = ""
    sku: str = ""
    compare_price: str = ""
    cost_price: str = ""
    category_id: str = ""
    subcategory_id: str = ""
    supplier_id: str = ""
    tags: str = ""
    weight: str = ""
    is_featured: str = ""
    is_active: str = ""
    is_digital: str = ""
    requires_shipping: str = ""
    taxable: str = ""
    meta_title: str = ""
    meta_description: str = ""
    tax_amount: str = ""
    tax_percentage: str = ""
    price_including_tax: str = ""
    price_excluding_tax: str = ""
    extra_tax: str = ""
    further_tax: str = ""
    fed_payable_tax: str = ""
    discount: str = ""
    hs_code: str = ""
    product_type: str = ""
    stock_management_type: str = ""
    price_per_unit: str = ""
    base_weight_unit: str = ""
    thc: str = ""
    cbd: str = ""
    difficulty: str = ""
    flowering_time: str = ""
    yield_amount: str = ""
    stock_quantity: str = ""
    stock_status: str = ""
    location: str = ""


def _optional(value: str) -> str | None:
    value = value.strip()
    return value or None


class ImportStrategy(ABC, Generic[RowT]):
    """Contract between the generic pipeline and one kind of imported entity."""

    import_type: ClassVar[str]
    event_name: ClassVar[str]
    row_type: ClassVar[type]
    column_map: ClassVar[dict[str, tuple[str, ...]]]
    required_fields: ClassVar[tuple[str, ...]]
    duplicate_message: ClassVar[str]
    # Rough size of one CSV record, used for the upload response estimate
    bytes_per_record: ClassVar[int]
    template_file_name: ClassVar[str]
    template_samples: ClassVar[list[dict[str, str]]]

    @property
    @abstractmethod
    def chunk_size(self) -> int:
        ...

    def parse_text(self, text: str) -> ParsedCSV:
        return parse_csv(text, self.column_map, self.required_fields)

    def parse(self, text: str) -> list[RowT]:
        parsed = self.parse_text(text)
        known = {f.name for f in fields(self.row_type)}
        return [
            self.row_type(**{key: value for key, value in row.items() if key in known})
            for row in parsed.rows
        ]

    def template_header(self) -> list[str]:
        """Display header for the downloadable template: each field's first alias, title-cased."""
        return [aliases[0].title() for aliases in self.column_map.values()]

    def template_rows(self) -> list[list[str]]:
        return [[sample.get(field, "") for field in self.column_map] for sample in self.template_samples]

    @abstractmethod
    def identifier(self, row: RowT) -> str | None:
        """Human-facing key reported alongside a failed row."""

    @abstractmethod
    def validate_row(self, row: RowT) -> list[str]:
        ...

    @abstractmethod
    def check_duplicate(self, session: Session, tenant_id: str, row: RowT) -> bool:
        ...

    @abstractmethod
    def write_row(self, session: Session, tenant_id: str, row: RowT) -> dict[str, Any]:
        """Insert the entity and its auxiliary records; return a short summary."""


class UserImportStrategy(ImportStrategy[UserImportRow]):
    import_type = "users"
    event_name = "user/bulk-import"
    row_type = UserImportRow
    column_map = {
        "name": ("name", "full name", "user name"),
        "email": ("email", "email address"),
        "buyer_ntn_cnic": ("buyer ntn or cnic", "ntn", "cnic", "buyer ntn/cnic"),
        "buyer_business_name": ("buyer business name", "business name"),
        "buyer_province": ("buyer province", "province"),
        "buyer_address": ("buyer address", "address"),
        "buyer_registration_type": ("buyer registration type", "registration type"),
    }
    required_fields = ("name", "email")
    duplicate_message = "User with this email already exists"
    bytes_per_record = 500
    template_file_name = "bulk_user_import_template.csv"
    template_samples = [
        {
            "name": "John Doe", "email": "john.doe@example.com",
            "buyer_ntn_cnic": "1234567890123", "buyer_business_name": "Doe Industries",
            "buyer_province": "Punjab", "buyer_address": "123 Business Street, Lahore",
            "buyer_registration_type": "Registered",
        },
        {
            "name": "Jane Smith", "email": "jane.smith@example.com",
            "buyer_ntn_cnic": "9876543210987", "buyer_business_name": "Smith Trading Co",
            "buyer_province": "Sindh", "buyer_address": "456 Commerce Avenue, Karachi",
            "buyer_registration_type": "Registered",
        },
        {
            "name": "Ahmed Khan", "email": "ahmed.khan@example.com",
            "buyer_ntn_cnic": "1122334455667", "buyer_business_name": "Khan Enterprises",
            "buyer_province": "KPK", "buyer_address": "789 Market Road, Peshawar",
            "buyer_registration_type": "Unregistered",
        },
    ]

    @property
    def chunk_size(self) -> int:
        return get_settings().user_import_chunk_size

    def identifier(self, row: UserImportRow) -> str | None:
        return _optional(row.email)

    def validate_row(self, row: UserImportRow) -> list[str]:
        return validate_user_row(row)

    def check_duplicate(self, session: Session, tenant_id: str, row: UserImportRow) -> bool:
        email = row.email.strip().lower()
        existing = session.scalar(
            select(User.id).where(User.tenant_id == tenant_id, User.email == email).limit(1)
        )
        return existing is not None

    def write_row(self, session: Session, tenant_id: str, row: UserImportRow) -> dict[str, Any]:
        user = User(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=row.name.strip(),
            email=row.email.strip().lower(),
            user_type="customer",
            buyer_ntn_cnic=_optional(row.buyer_ntn_cnic),
            buyer_business_name=_optional(row.buyer_business_name),
            buyer_province=_optional(row.buyer_province),
            buyer_address=_optional(row.buyer_address),
            buyer_registration_type=_optional(row.buyer_registration_type),
        )
        session.add(user)
        session.flush()
        session.add(
            UserLoyaltyPoints(
                tenant_id=tenant_id,
                user_id=user.id,
                total_points_earned=0,
                total_points_redeemed=0,
                available_points=0,
                pending_points=0,
                points_expiring_soon=0,
            )
        )
        session.flush()
        return {"id": user.id, "name": user.name, "email": user.email}


VALID_IN_REASONS = (
    "Purchase Order",
    "Stock Return",
    "Initial Stock",
    "Transfer In",
    "Supplier Return",
    "Production Complete",
    "Other",
)
DEFAULT_IN_REASON = "Initial Stock"
BULK_IMPORT_REFERENCE = "BULK-IMPORT"
BULK_IMPORT_ACTOR = "system-bulk-import"
SLUG_MAX_LENGTH = 100

_SLUG_WHITESPACE = re.compile(r"\s+")
_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def slugify(value: str) -> str:
    slug = _SLUG_WHITESPACE.sub("-", value.strip().lower())
    return _SLUG_INVALID.sub("", slug)[:SLUG_MAX_LENGTH]


def unique_slug(value: str) -> str:
    """Slug with a millisecond timestamp suffix so repeated names never collide."""
    return f"{slugify(value)}-{int(time.time() * 1000)}"


def parse_tags(value: str) -> list[str] | None:
    tags = [tag.strip() for tag in value.split(",") if tag.strip()]
    return tags or None


class ProductImportStrategy(ImportStrategy[ProductImportRow]):
    import_type = "products"
    event_name = "product/bulk-import"
    row_type = ProductImportRow
    column_map = {
        # Basic information
        "name": ("name", "product name", "title"),
        "price": ("price", "selling price", "unit price"),
        "slug": ("slug", "url slug"),
        "description": ("description", "long description"),
        "short_description": ("short description", "summary"),
        "sku": ("sku", "product sku", "product_sku", "product code", "item code"),
        "compare_price": ("compare price", "original price", "mrp"),
        "cost_price": ("cost price", "purchase price", "wholesale price"),
        # Organization
        "category_id": ("category id", "category", "category_id"),
        "subcategory_id": ("subcategory id", "subcategory", "subcategory_id"),
        "supplier_id": ("supplier id", "supplier", "supplier_id"),
        "tags": ("tags", "product tags"),
        "weight": ("weight", "product weight"),
        # Flags
        "is_featured": ("is featured", "featured"),
        "is_active": ("is active", "active"),
        "is_digital": ("is digital", "digital"),
        "requires_shipping": ("requires shipping", "shipping required"),
        "taxable": ("taxable", "tax applicable"),
        # SEO
        "meta_title": ("meta title", "seo title"),
        "meta_description": ("meta description", "seo description"),
        # Tax and discount
        "tax_amount": ("tax amount",),
        "tax_percentage": ("tax percentage",),
        "price_including_tax": ("price including tax",),
        "price_excluding_tax": ("price excluding tax",),
        "extra_tax": ("extra tax",),
        "further_tax": ("further tax",),
        "fed_payable_tax": ("fed payable tax",),
        "discount": ("discount",),
        # Catalogue details
        "hs_code": ("hs code", "harmonized system code"),
        "product_type": ("product type", "type"),
        "stock_management_type": ("stock management type", "inventory type"),
        "price_per_unit": ("price per unit", "price per gram", "price per kg"),
        "base_weight_unit": ("base weight unit", "weight unit"),
        "thc": ("thc", "thc percentage"),
        "cbd": ("cbd", "cbd percentage"),
        "difficulty": ("difficulty", "growing difficulty"),
        "flowering_time": ("flowering time",),
        "yield_amount": ("yield amount", "expected yield"),
        # Opening stock
        "stock_quantity": ("stock quantity", "quantity", "initial stock", "stock qty"),
        "stock_status": ("stock status", "status", "reason"),
        "location": ("location", "warehouse location", "storage location"),
    }
    required_fields = ("name", "price")
    duplicate_message = "Product with this SKU already exists"
    bytes_per_record = 800
    template_file_name = "bulk_product_import_template.csv"

    template_samples = [
        {
            "name": "Premium Product 1", "price": "29.99", "sku": "PROD-001",
            "description": "High quality premium product with detailed description",
            "short_description": "Premium quality product", "compare_price": "39.99",
            "cost_price": "20.00", "category_id": "cat-123", "subcategory_id": "subcat-456",
            "supplier_id": "sup-789", "tags": "electronics,premium,new", "weight": "0.5",
            "is_featured": "true", "is_active": "true", "is_digital": "false",
            "requires_shipping": "true", "taxable": "true",
            "meta_title": "Premium Product - Best Quality",
            "meta_description": "Premium product with amazing features",
            "tax_amount": "2.50", "tax_percentage": "8.5", "hs_code": "1234567890",
            "product_type": "simple", "stock_management_type": "quantity",
            "stock_quantity": "100", "stock_status": "Initial Stock",
            "location": "Warehouse A",
        },
        {
            "name": "Digital Service", "price": "19.99", "sku": "DIG-001",
            "description": "Digital download service", "short_description": "Instant download",
            "cost_price": "15.00", "category_id": "cat-456", "tags": "digital,service,download",
            "is_featured": "false", "is_active": "true", "is_digital": "true",
            "requires_shipping": "false", "taxable": "true",
            "meta_title": "Digital Service - Instant Access",
            "meta_description": "Download digital service instantly",
            "product_type": "simple", "stock_management_type": "quantity",
            "stock_quantity": "0",
        },
    ]

    @property
    def chunk_size(self) -> int:
        return get_settings().product_import_chunk_size

    def identifier(self, row: ProductImportRow) -> str | None:
        return _optional(row.sku)

    def validate_row(self, row: ProductImportRow) -> list[str]:
        return validate_product_row(row)

    def check_duplicate(self, session: Session, tenant_id: str, row: ProductImportRow) -> bool:
        sku = _optional(row.sku)
        if sku is None:
            return False
        existing = session.scalar(
            select(Product.id)
            .where(Product.tenant_id == tenant_id, func.lower(Product.sku) == sku.lower())
            .limit(1)
        )
        return existing is not None

    def write_row(self, session: Session, tenant_id: str, row: ProductImportRow) -> dict[str, Any]:
        name = row.name.strip()
        product = Product(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            slug=unique_slug(row.slug or name),
            description=_optional(row.description),
            short_description=_optional(row.short_description),
            sku=_optional(row.sku),
            price=parse_decimal(row.price),
            compare_price=parse_decimal(row.compare_price, None),
            cost_price=parse_decimal(row.cost_price, None),
            category_id=_optional(row.category_id),
            subcategory_id=_optional(row.subcategory_id),
            supplier_id=_optional(row.supplier_id),
            tags=parse_tags(row.tags),
            weight=parse_decimal(row.weight, None),
            is_featured=parse_bool(row.is_featured, False),
            is_active=parse_bool(row.is_active, True),
            is_digital=parse_bool(row.is_digital, False),
            requires_shipping=parse_bool(row.requires_shipping, True),
            taxable=parse_bool(row.taxable, True),
            tax_amount=parse_decimal(row.tax_amount),
            tax_percentage=parse_decimal(row.tax_percentage),
            price_including_tax=parse_decimal(row.price_including_tax),
            price_excluding_tax=parse_decimal(row.price_excluding_tax),
            extra_tax=parse_decimal(row.extra_tax),
            further_tax=parse_decimal(row.further_tax),
            fed_payable_tax=parse_decimal(row.fed_payable_tax),
            discount=parse_decimal(row.discount),
            meta_title=_optional(row.meta_title),
            meta_description=_optional(row.meta_description),
            hs_code=_optional(row.hs_code),
            product_type=_optional(row.product_type) or "simple",
            stock_management_type=_optional(row.stock_management_type) or "quantity",
            price_per_unit=parse_decimal(row.price_per_unit, None),
            base_weight_unit=_optional(row.base_weight_unit) or "grams",
            thc=parse_decimal(row.thc, None),
            cbd=parse_decimal(row.cbd, None),
            difficulty=_optional(row.difficulty),
            flowering_time=_optional(row.flowering_time),
            yield_amount=_optional(row.yield_amount),
        )
        session.add(product)
        session.flush()

        stock_quantity = parse_int(row.stock_quantity) or 0
        if stock_quantity > 0:
            self._add_opening_stock(session, tenant_id, product, row, stock_quantity)

        session.flush()
        return {
            "id": product.id,
            "name": product.name,
            "sku": product.sku,
            "stockQuantity": stock_quantity,
        }

    def _add_opening_stock(
        self,
        session: Session,
        tenant_id: str,
        product: Product,
        row: ProductImportRow,
        quantity: int,
    ) -> None:
        location = _optional(row.location)
        inventory = ProductInventory(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            product_id=product.id,
            quantity=quantity,
            reserved_quantity=0,
            available_quantity=quantity,
            reorder_point=0,
            reorder_quantity=0,
            location=location,
            supplier_id=product.supplier_id,
            last_restock_date=datetime.now(timezone.utc),
        )
        reason = row.stock_status.strip()
        session.add(inventory)
        session.flush()
        session.add(
            StockMovement(
                tenant_id=tenant_id,
                inventory_id=inventory.id,
                product_id=product.id,
                movement_type="in",
                quantity=quantity,
                previous_quantity=0,
                new_quantity=quantity,
                reason=reason if reason in VALID_IN_REASONS else DEFAULT_IN_REASON,
                location=location,
                reference=BULK_IMPORT_REFERENCE,
                notes=f"Created via bulk product import. Original product: {product.name}",
                cost_price=product.cost_price,
                supplier_id=product.supplier_id,
                processed_by=BULK_IMPORT_ACTOR,
            )
        )


_STRATEGIES: dict[str, ImportStrategy] = {
    strategy.import_type: strategy
    for strategy in (UserImportStrategy(), ProductImportStrategy())
}


def get_strategy(import_type: str) -> ImportStrategy:
    try:
        return _STRATEGIES[import_type]
    except KeyError:
        raise UnknownImportTypeError(f"Unsupported import type: {import_type}") from None


def available_import_types() -> list[str]:
    return sorted(_STRATEGIES)
