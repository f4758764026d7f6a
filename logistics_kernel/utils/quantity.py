"""Quantity coercion helpers. Stock quantities are always Decimal."""

from decimal import Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a stored or caller-supplied quantity to Decimal.

    ``None`` and empty strings count as zero. Floats go through ``str`` so
    0.1 stays 0.1.

    Raises:
        ValueError: If the value is not numeric or not finite (NaN, Infinity).
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Not a quantity: {value!r}") from exc
    if not quantity.is_finite():
        raise ValueError(f"Not a finite quantity: {value!r}")
    return quantity


def format_quantity(value: Any) -> str:
    """Canonical text form: 5, 5.0 and Decimal('5.000') all render as '5'."""
    quantity = to_decimal(value)
    if quantity == quantity.to_integral_value():
        return str(quantity.quantize(Decimal("1")))
    return str(quantity.normalize())
