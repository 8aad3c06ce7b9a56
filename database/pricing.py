"""Line item and order total calculations."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

Money = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class InvalidLineItem(ValueError):
    """Raised when line item values would violate the order_items constraints."""


def to_money(value: Money, field: str = "amount") -> Decimal:
    """Convert a value to a Decimal rounded to cents.

    Floats go through ``str`` so that 0.1 becomes Decimal("0.10") rather than
    its binary expansion.
    """
    if isinstance(value, bool):
        raise InvalidLineItem(f"{field} must be a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidLineItem(f"{field} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise InvalidLineItem(f"{field} must be finite, got {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(
    quantity: int,
    unit_price: Money,
    discount_amount: Money = 0,
    tax_amount: Money = 0,
) -> Decimal:
    """Return quantity * unit_price - discount_amount + tax_amount.

    Args:
        quantity: Number of units, must be a positive integer.
        unit_price: Price per unit, must be >= 0.
        discount_amount: Discount for the whole line, must be >= 0.
        tax_amount: Tax for the whole line, must be >= 0.

    Returns:
        The line total rounded to cents.

    Raises:
        InvalidLineItem: If any input is out of range or the total is negative.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidLineItem(f"quantity must be an integer, got {quantity!r}")
    if quantity <= 0:
        raise InvalidLineItem(f"quantity must be greater than 0, got {quantity}")

    price = to_money(unit_price, "unit_price")
    discount = to_money(discount_amount, "discount_amount")
    tax = to_money(tax_amount, "tax_amount")

    for field, amount in (
        ("unit_price", price),
        ("discount_amount", discount),
        ("tax_amount", tax),
    ):
        if amount < 0:
            raise InvalidLineItem(f"{field} must not be negative, got {amount}")

    total = quantity * price - discount + tax
    if total < 0:
        raise InvalidLineItem(
            f"discount {discount} exceeds line value {quantity * price + tax}"
        )
    return total


def order_total(line_totals: Iterable[Money]) -> Decimal:
    """Sum line totals; an order without items totals 0.00."""
    return sum((to_money(t, "total_price") for t in line_totals), ZERO)
