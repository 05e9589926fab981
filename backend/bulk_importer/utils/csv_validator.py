"""Validate CSV headers and enforce per-row field constraints."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bulk_importer.services.import_strategies import ProductImportRow, UserImportRow


class ValidationError(ValueError):
    """Custom exception for CSV validation errors."""

    pass


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LEADING_FLOAT = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def validate_headers(header_map: Mapping[str, int], required: Sequence[str]) -> None:
    """Ensure every required field resolved to a column before processing."""
    missing = [field for field in required if field not in header_map]
    if missing:
        raise ValidationError(
            f"Required columns missing: {', '.join(missing)} "
            f"{'is' if len(missing) == 1 else 'are'} required"
        )


def parse_number(value: str | None) -> float | None:
    """Read the leading numeric part of ``value`` ("12.5kg" -> 12.5), or None."""
    if not value or not value.strip():
        return None
    match = _LEADING_FLOAT.match(value)
    return float(match.group(0)) if match else None


def parse_int(value: str | None) -> int | None:
    if not value or not value.strip():
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(0)) if match else None


def parse_decimal(value: str | None, default: Decimal | None = Decimal("0.00")) -> Decimal | None:
    """Re-parse a monetary/decimal cell, falling back to ``default`` when blank or garbage."""
    number = parse_number(value)
    if number is None:
        return default
    try:
        return Decimal(str(number))
    except InvalidOperation:
        return default


def parse_bool(value: str | None, default: bool) -> bool:
    if not value or not value.strip():
        return default
    return value.strip().lower() == "true"


def validate_user_row(row: UserImportRow) -> list[str]:
    """Return the first violated rule for a user row (one message per row)."""
    if not row.name.strip():
        return ["Name is required"]
    if not row.email.strip():
        return ["Email is required"]
    if not EMAIL_PATTERN.match(row.email.strip()):
        return ["Invalid email format"]
    return []


def validate_product_row(row: ProductImportRow) -> list[str]:
    """Collect every violated rule for a product row."""
    errors: list[str] = []
    if not row.name.strip():
        errors.append("Product name is required")

    if not row.price.strip():
        errors.append("Price is required")
    else:
        price = parse_number(row.price)
        if price is None or price < 0:
            errors.append("Price must be a valid positive number")

    if row.stock_quantity.strip():
        quantity = parse_int(row.stock_quantity)
        if quantity is None or quantity < 0:
            errors.append("Stock quantity must be a valid non-negative number")

    return errors
