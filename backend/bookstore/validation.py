from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum single amount: ₹9,999,999.99 (999,999,999 paise)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def parse_amount_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """
    Convert a rupee amount from JSON (number or numeric string) into paise.

    Rejects booleans, scientific notation, more than two decimal places,
    negatives, and amounts above MAX_AMOUNT_CENTS.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required and must be a number")

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
        raw = stripped
    elif isinstance(value, (int, float)):
        raw = repr(value) if isinstance(value, float) else str(value)
    else:
        raise ValidationError(f"{field} must be a number")

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} cannot have more than two decimal places")

    cents = int(amount * 100)
    if cents < 0 or (cents == 0 and not allow_zero):
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum allowed amount")
    return cents


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_positive_int(value, field)


def parse_percent_to_bps(value: Any, field: str) -> int:
    """'2.5' or 2.5 (percent) -> 250 basis points; valid range 0-100%."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        pct = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    if pct.as_tuple().exponent < -2:
        raise ValidationError(f"{field} cannot have more than two decimal places")
    return int(pct * 100)


def clean_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return stripped or None


_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no", ""}


def parse_bool(value: Any, field: str, *, default: bool = False) -> bool:
    """JSON booleans, 0/1, or the strings true/false, yes/no, 1/0."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{field} must be a boolean")
