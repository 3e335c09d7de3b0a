from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from .errors import ValidationError, InvalidQuantity, InvalidPrice


# Maximum price per unit / per menu item: 9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999.99")
MAX_QUANTITY = Decimal("999999999.999")
# Portions of one menu item on a single order line
MAX_LINE_QUANTITY = 9999

QUANTITY_EXP = Decimal("0.001")
PRICE_EXP = Decimal("0.01")


def _to_decimal(value: Any, field: str, error_cls: type[ValidationError]) -> Decimal:
    # bool is an int subclass; reject it explicitly
    if value is None or isinstance(value, bool):
        raise error_cls(f"{field} is required", details={"field": field})

    if isinstance(value, float):
        value = repr(value)

    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise error_cls(f"{field} is required", details={"field": field})

    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise error_cls(f"{field} must be a number", details={"field": field})

    if not dec.is_finite():
        raise error_cls(f"{field} must be a finite number", details={"field": field})
    return dec


def parse_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Positive stock quantity with at most 3 decimal places."""
    qty = _to_decimal(value, field, InvalidQuantity)
    if qty <= 0:
        raise InvalidQuantity(f"{field} must be > 0", details={"field": field})
    if qty > MAX_QUANTITY:
        raise InvalidQuantity(f"{field} cannot exceed {MAX_QUANTITY}", details={"field": field})
    if qty != qty.quantize(QUANTITY_EXP):
        raise InvalidQuantity(f"{field} supports at most 3 decimal places", details={"field": field})
    return qty.quantize(QUANTITY_EXP)


def parse_price(value: Any, field: str = "price_per_unit") -> Decimal:
    """Positive money amount with at most 2 decimal places."""
    price = _to_decimal(value, field, InvalidPrice)
    if price <= 0:
        raise InvalidPrice(f"{field} must be > 0", details={"field": field})
    if price > MAX_PRICE:
        raise InvalidPrice(f"{field} cannot exceed {MAX_PRICE}", details={"field": field})
    if price != price.quantize(PRICE_EXP):
        raise InvalidPrice(f"{field} supports at most 2 decimal places", details={"field": field})
    return price.quantize(PRICE_EXP)


def parse_id(value: Any, field: str) -> int:
    """Strict positive integer identifier (rejects floats, bools, '1.0')."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if result <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={"field": field})
    return result


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_id_list(values: Any, field: str) -> list[int]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list", details={"field": field})
    return [parse_id(v, field) for v in values]


def parse_positive_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantity(f"{field} must be an integer", details={"field": field})
    if value <= 0:
        raise InvalidQuantity(f"{field} must be > 0", details={"field": field})
    if maximum is not None and value > maximum:
        raise InvalidQuantity(f"{field} cannot exceed {maximum}", details={"field": field})
    return value


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = list(choices)
    if not isinstance(value, str) or value.strip().upper() not in allowed:
        raise ValidationError(
            f"Invalid {field}: {value}. Must be one of {allowed}",
            details={"field": field, "allowed": allowed},
        )
    return value.strip().upper()


def parse_text(value: Any, field: str, *, max_length: int, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank", details={"field": field})
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def decimal_to_str(value: Decimal | None) -> str | None:
    """Serialize Numeric columns as exact strings (never floats)."""
    if value is None:
        return None
    return format(Decimal(value).normalize(), "f")
