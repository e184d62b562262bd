from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


# Largest amount a NUMERIC(10, 2) column can hold: 99,999,999.99 (9,999,999,999 cents)
MAX_AMOUNT_CENTS = 9_999_999_999

CENT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


def parse_money_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    """
    Convert a monetary input to integer cents without going through binary floats.

    Accepts ints, Decimals and numeric strings such as "10", "10.5", "10.50".
    Floats are accepted via their shortest repr, so 0.1 becomes 10 cents.
    More than two fractional digits is rejected rather than rounded.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")

    if isinstance(value, float):
        value = repr(value)

    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidOperation(value)
        quantized = amount.quantize(CENT)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a decimal amount")

    if amount != quantized:
        raise ValidationError(f"{field} must have at most two decimal places")

    cents = int(amount * 100)
    if cents < 0:
        raise ValidationError(f"{field} must not be negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount")
    return cents


def cents_to_decimal(cents: int | None) -> Decimal:
    """Integer cents -> Decimal with exactly two fractional digits."""
    return (Decimal(int(cents or 0)) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def parse_optional_int(value: Any, field: str, *, minimum: int | None = None) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field, minimum=minimum)


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    if not isinstance(value, str) or value.strip().lower() not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value.strip().lower()


def parse_optional_text(value: Any, field: str, *, max_length: int = 2000) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds {max_length} characters")
    return text
