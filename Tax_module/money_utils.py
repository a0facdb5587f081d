"""
Fixed-point money helpers. All amounts are Decimal and rounded half-up to paise.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from exceptions import ValidationError

Money = Decimal

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
# Largest value the Numeric(12, 2) amount columns hold
MAX_AMOUNT = Decimal("9999999999.99")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_money(value, field: str = "amount") -> Money:
    """
    Parse a request amount into a rounded Decimal.
    Rejects non-numeric, NaN, infinite, negative and out-of-range values.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    try:
        rounded = round_money(amount)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    return rounded


def percent_of(amount, percent) -> Money:
    return round_money(D(amount) * D(percent) / HUNDRED)


def format_percent(value) -> str:
    """10.00 -> "10", 12.50 -> "12.5"."""
    amount = D(value)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount.normalize())
