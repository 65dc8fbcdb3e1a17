"""
Money arithmetic for trades and cost basis.

All currency values are ``Decimal`` and are rounded half-up to two decimal
places after every arithmetic combination, so repeated buys never accumulate
floating drift. Quantities are exact integers.

Key formulas:
    Trade total:    total = round2(price * qty)
    Average cost:   a1 = round2((round2(a0 * q0) + round2(price * qty)) / (q0 + qty))

Where:
    q0, a0 = quantity and average cost already held (0, 0 for a new position)
    price, qty = execution price and quantity of the buy
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Tuple, Union

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary float artefacts.

    Floats go through ``str`` so 150.1 becomes Decimal("150.1") rather than
    Decimal("150.099999999999994315658113919198513031005859375").

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round2(value: Number) -> Decimal:
    """Round a currency value half-up to 2 decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def trade_total(price: Number, quantity: int) -> Decimal:
    """Cash moved by a trade of ``quantity`` shares at ``price``.

    Args:
        price: Execution price per share.
        quantity: Number of shares (must be positive).

    Returns:
        ``round2(price * quantity)``.

    Raises:
        ValueError: If quantity is not a positive integer.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"Quantity must be a positive integer, got {quantity!r}")
    return round2(to_decimal(price) * quantity)


def weighted_average_cost(
    held_quantity: int, held_avg_cost: Number, buy_quantity: int, buy_price: Number
) -> Tuple[int, Decimal]:
    """Compute the position after a buy.

    Args:
        held_quantity: Shares already held (0 for a new position).
        held_avg_cost: Average cost of the shares already held.
        buy_quantity: Shares bought.
        buy_price: Execution price of the buy.

    Returns:
        Tuple of (new_quantity, new_avg_cost).

    Raises:
        ValueError: If held_quantity is negative or buy_quantity is not positive.
    """
    if held_quantity < 0:
        raise ValueError("Held quantity cannot be negative")
    if buy_quantity <= 0:
        raise ValueError("Buy quantity must be positive")

    new_quantity = held_quantity + buy_quantity
    held_value = round2(to_decimal(held_avg_cost) * held_quantity)
    bought_value = trade_total(buy_price, buy_quantity)
    new_avg_cost = round2((held_value + bought_value) / new_quantity)
    return new_quantity, new_avg_cost


def position_value(quantity: int, price: Number) -> Decimal:
    """Value of ``quantity`` shares at ``price`` (cost basis or market)."""
    return round2(to_decimal(price) * quantity)


def unrealized_pnl(quantity: int, avg_cost: Number, current_price: Number) -> Decimal:
    """Unrealised gain of a position, marked at ``current_price``."""
    return position_value(quantity, current_price) - position_value(quantity, avg_cost)
