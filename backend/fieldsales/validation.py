from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


ZERO = Decimal("0")

# Maximum unit price accepted at entry; prevents nonsensical values
MAX_UNIT_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce a JSON/document value into an exact Decimal.

    Documents store money as decimal strings; API payloads may send numbers.
    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def money_str(value: Decimal) -> str:
    """Serialize a Decimal for document storage (no exponent notation)."""
    normalized = value.normalize()
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


def parse_quantity(value: Any, field: str = "quantity") -> int:
    # Integers - strict validation to reject floats and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        qty = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            qty = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if qty < 1:
        raise ValidationError(f"{field} must be at least 1")
    return qty


def parse_unit_price(value: Any, field: str = "unitPrice") -> Decimal:
    price = to_money(value, field)
    if price < ZERO:
        raise ValidationError(f"{field} cannot be negative")
    if price > MAX_UNIT_PRICE:
        raise ValidationError(f"{field} exceeds maximum allowed value")
    return price


def parse_discount_percent(value: Any, field: str = "discountPercent") -> Decimal:
    # No upper cap: excess over the booker ceiling is tracked, not rejected.
    percent = to_money(value, field)
    if percent < ZERO:
        raise ValidationError(f"{field} cannot be negative")
    return percent


def parse_positive_amount(value: Any, field: str = "amount") -> Decimal:
    amount = to_money(value, field)
    if amount <= ZERO:
        raise ValidationError(f"{field} must be greater than 0")
    return amount


def require_text(value: Any, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def validate_item_payload(payload: Any) -> dict:
    """
    Validates + normalizes one order line from an API payload.

    Returns a dict with productId, productName, quantity, unitPrice and
    discountPercent; everything else is derived by the discount module.
    """
    if not isinstance(payload, dict):
        raise ValidationError("each item must be an object")

    return {
        "productId": require_text(payload.get("productId"), "productId"),
        "productName": str(payload.get("productName") or "").strip(),
        "quantity": parse_quantity(payload.get("quantity")),
        "unitPrice": parse_unit_price(payload.get("unitPrice")),
        "discountPercent": parse_discount_percent(payload.get("discountPercent", 0)),
    }
