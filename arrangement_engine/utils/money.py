"""Decimal-safe money parsing and formatting"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from arrangement_engine.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    """Round to whole pence, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a user or stored amount into a two-place Decimal.

    Accepts Decimal, int, float or strings such as "50", "50.5", "£1,250.00".
    Anything that is not a finite number raises ValidationError, so NaN never
    reaches downstream arithmetic.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Amount is required", field=field, value=value)

    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip().replace(",", "").lstrip("£$")
        if not text:
            raise ValidationError("Amount is required", field=field, value=value)
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValidationError("Amount is not a number", field=field, value=value)

    if not amount.is_finite():
        raise ValidationError("Amount is not a number", field=field, value=value)

    return quantize(amount)


def parse_positive_amount(value: Any, field: str = "amount") -> Decimal:
    """Parse an amount and require it to be greater than zero."""
    amount = parse_amount(value, field=field)
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than zero", field=field, value=value)
    return amount


def parse_optional_amount(value: Any, field: str = "amount") -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_amount(value, field=field)


def format_amount(value: Decimal) -> str:
    """Format as a plain two-decimal string, e.g. Decimal('125') -> '125.00'."""
    return f"{quantize(value):.2f}"


def sum_amounts(values: Iterable[Decimal]) -> Decimal:
    return quantize(sum(values, ZERO))
