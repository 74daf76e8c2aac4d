"""Coercion helpers for quantities and money amounts coming from callers."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from src.common.exceptions.custom_exceptions import ValidationError

CENTS = Decimal("0.01")
# Largest value a DECIMAL(12, 2) money column holds
MAX_AMOUNT = Decimal("9999999999.99")
# Largest value the INT quantity columns hold
MAX_QUANTITY = 2147483647


def parse_quantity(value, field_name: str = "quantity") -> int:
    """Whole number of units, strictly positive."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer, got {value!r}")
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer, got {value!r}")
    if quantity <= 0:
        raise ValidationError(f"{field_name} must be greater than 0, got {quantity}")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"{field_name} exceeds the maximum of {MAX_QUANTITY}, got {quantity}")
    return quantity


def parse_amount(value, field_name: str = "amount") -> Decimal:
    """Non-negative money amount rounded to cents."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number, got {value!r}")
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative, got {amount}")
    try:
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field_name} is too large, got {value!r}")
    check_amount_range(amount, field_name)
    return amount


def check_amount_range(amount: Decimal, field_name: str = "amount") -> Decimal:
    """Rejects amounts a money column cannot store."""
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} exceeds the maximum of {MAX_AMOUNT}, got {amount}")
    return amount


def parse_id(value, field_name: str = "id") -> int:
    """Database identifier: a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {value!r}")
    return value
