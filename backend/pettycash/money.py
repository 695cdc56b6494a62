from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# 9,999,999,999,999.99 fits Numeric(15, 2)
MAX_AMOUNT = Decimal("9999999999999.99")


def money(value) -> Decimal:
    """Quantize anything numeric (None counts as zero) to 2 places."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def parse_amount(value, field: str, *, allow_zero: bool = False) -> Decimal:
    """
    Parse a client-supplied monetary amount.

    Accepts Decimal, int, float or numeric strings. Rejects booleans,
    non-finite values and anything outside (0, MAX_AMOUNT], or
    [0, MAX_AMOUNT] when allow_zero is set.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    try:
        amount = money(str(value).strip() if isinstance(value, str) else value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a valid number", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a valid number", field=field)

    if allow_zero:
        if amount < 0:
            raise ValidationError(f"{field} cannot be negative", field=field)
    elif amount <= 0:
        raise ValidationError(f"{field} must be at least 0.01", field=field)

    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", field=field)
    return amount


def to_str(value) -> str | None:
    """JSON form of a money column ("1234.50")."""
    if value is None:
        return None
    return str(money(value))
