from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .time_utils import parse_iso_date


# Field length limits
MAX_NAME_LENGTH = 255
MAX_PHONE_LENGTH = 50
MAX_EMAIL_LENGTH = 255
MAX_ITEM_TYPE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000
MAX_NOTE_LENGTH = 5000
MAX_ADDRESS_LENGTH = 500
MAX_TICKET_PREFIX_LENGTH = 10
MAX_CURRENCY_LENGTH = 10
MAX_LOCATION_NAME_LENGTH = 100

# Largest value a NUMERIC(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


def require_object(data: Any) -> dict:
    """Request bodies must be JSON objects."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def sanitize_text(value: str) -> str:
    """Trim and normalize line endings to \\n."""
    return value.strip().replace("\r\n", "\n").replace("\r", "\n")


def validate_text(value: Any, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    cleaned = sanitize_text(value)
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} exceeds maximum length of {max_length} characters")
    return cleaned


def validate_required(value: Any, field: str, max_length: int) -> str:
    if value is None:
        raise ValidationError(f"{field} is required")
    cleaned = validate_text(value, field, max_length)
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def validate_optional(value: Any, field: str, max_length: int) -> str | None:
    """None and blank strings both mean "no value"."""
    if value is None:
        return None
    cleaned = validate_text(value, field, max_length)
    return cleaned or None


def parse_amount(value: Any, field: str) -> Decimal | None:
    """
    Money amount: non-negative, at most two decimal places.

    Accepts numbers or numeric strings; None -> None. Booleans and
    scientific notation are rejected.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
        raw = stripped
    elif isinstance(value, (int, float)):
        raw = str(value)
    else:
        raise ValidationError(f"{field} must be a number")

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must not be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum amount")
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"{field} must have at most two decimal places")
    return amount.quantize(Decimal("0.01"))


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be true or false")


def parse_int(value: Any, field: str, minimum: int | None = None, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return value


def parse_promise_date(value: Any):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("promise_date must be a YYYY-MM-DD string")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("promise_date must be a YYYY-MM-DD string")
