"""Currency arithmetic on integer cents.

All amounts are integer cents ($10.00 = 1000). Quantities, percentages and
rates are Decimal. Only multiplication by a quantity, percentages and tax
rates round, and they round half-up to the cent.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

_ONE = Decimal(1)
_HUNDRED = Decimal(100)


def _check_cents(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Currency amounts must be integer cents, got {type(value).__name__}")
    return value


def _check_decimal(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Refusing binary float for a currency calculation; pass Decimal or str")
    return Decimal(value)


def _round(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def add(a: int, b: int) -> int:
    return _check_cents(a) + _check_cents(b)


def subtract(a: int, b: int) -> int:
    return _check_cents(a) - _check_cents(b)


def is_zero(cents: int) -> bool:
    return _check_cents(cents) == 0


def compare(a: int, b: int) -> int:
    """Three-way comparison: -1, 0 or 1."""
    a, b = _check_cents(a), _check_cents(b)
    return (a > b) - (a < b)


def multiply_by_quantity(unit_cents: int, quantity: Decimal | int | str) -> int:
    """
    Extend a unit rate by a quantity, rounded to the cent.

    Fractional quantities (e.g. 2.5 hours) are common, so the product is
    rounded here rather than carried as a fraction of a cent.
    """
    return _round(Decimal(_check_cents(unit_cents)) * _check_decimal(quantity))


def percentage_of(cents: int, percentage: Decimal | int | str) -> int:
    """
    Percentage (0-100) of an amount, rounded half-up to the cent.

    Raises:
        ValueError: If percentage is outside 0-100
    """
    pct = _check_decimal(percentage)
    if pct < 0 or pct > _HUNDRED:
        raise ValueError(f"Percentage must be between 0 and 100, got {pct}")
    return _round(Decimal(_check_cents(cents)) * pct / _HUNDRED)


def apply_rate(cents: int, rate: Decimal | int | str) -> int:
    """Amount times a fractional rate (0.0875 = 8.75%), rounded to the cent."""
    return _round(Decimal(_check_cents(cents)) * _check_decimal(rate))


def to_cents(amount: Decimal | int | str) -> int:
    """
    Convert a dollar amount ("543.75", Decimal("12.5"), 40) to cents.

    Sub-cent precision is rejected rather than rounded away.

    Raises:
        TypeError: If amount is a float
        ValueError: If amount is not a number or has more than 2 decimals
    """
    try:
        value = _check_decimal(amount)
    except InvalidOperation:
        raise ValueError(f"Not a currency amount: {amount!r}")

    if not value.is_finite():
        raise ValueError(f"Not a currency amount: {amount!r}")

    cents = value * _HUNDRED
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {amount} has more precision than one cent")
    return int(cents)


def format_cents(cents: int, symbol: str = "$") -> str:
    """Display form, e.g. 123456 -> '$1,234.56'. Presentation only."""
    cents = _check_cents(cents)
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(cents), 100)
    return f"{sign}{symbol}{dollars:,}.{remainder:02d}"
