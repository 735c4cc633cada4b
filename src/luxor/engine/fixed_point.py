"""Scaled-integer arithmetic for reward-per-token indices.

Indices are stored as ``ratio * SCALE`` integers so that pro-rata accounting
never touches floating point. All helpers are checked: a result outside the
working width raises ``ArithmeticOverflow`` instead of wrapping.
"""

from ..errors import ArithmeticOverflow, DivisionByZero

SCALE = 10 ** 12
WORD_MAX = 2 ** 128 - 1  # Working width for indices and intermediate products
AMOUNT_MAX = 2 ** 64 - 1  # Width of token amounts
RATE_DENOMINATOR = 1_000_000  # Denominator for bonus and fee rates


def _check_int(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")


def checked_add(a: int, b: int, limit: int = WORD_MAX) -> int:
    """Add two non-negative integers, failing above ``limit``."""
    result = a + b
    if result > limit:
        raise ArithmeticOverflow(f"{a} + {b} exceeds {limit}")
    return result


def checked_sub(a: int, b: int) -> int:
    """Subtract, failing on underflow."""
    if b > a:
        raise ArithmeticOverflow(f"{a} - {b} underflows")
    return a - b


def checked_mul(a: int, b: int, limit: int = WORD_MAX) -> int:
    """Multiply two non-negative integers, failing above ``limit``."""
    result = a * b
    if result > limit:
        raise ArithmeticOverflow(f"{a} * {b} exceeds {limit}")
    return result


def mul_div(a: int, b: int, denominator: int, limit: int = WORD_MAX) -> int:
    """
    Compute ``a * b // denominator`` with a checked intermediate product.

    Args:
        a: First factor
        b: Second factor
        denominator: Divisor (must be non-zero)
        limit: Maximum allowed intermediate product

    Returns:
        Floor of the scaled quotient

    Raises:
        DivisionByZero: If denominator is zero
        ArithmeticOverflow: If ``a * b`` exceeds ``limit``
    """
    if denominator == 0:
        raise DivisionByZero(f"mul_div({a}, {b}, 0)")
    return checked_mul(a, b, limit) // denominator


class FixedPointIndex:
    """Reward-per-token index arithmetic at a fixed ``SCALE``."""

    scale = SCALE

    @staticmethod
    def accrue(delta_numerator: int, denominator: int) -> int:
        """
        Index increment for ``delta_numerator`` units spread over ``denominator``.

        Formula: increment = delta_numerator * SCALE / denominator (floored)

        Args:
            delta_numerator: Newly accrued reward units
            denominator: Units staked when the reward accrued

        Returns:
            Index increment

        Raises:
            DivisionByZero: If nothing is staked; callers guard "no stake, no accrual"
        """
        _check_int(delta_numerator, "delta_numerator")
        _check_int(denominator, "denominator")
        if delta_numerator < 0 or denominator < 0:
            raise ArithmeticOverflow("accrual inputs must be non-negative")
        return mul_div(delta_numerator, SCALE, denominator)

    @staticmethod
    def owed(amount: int, index_delta: int) -> int:
        """
        Reward owed to ``amount`` staked units over an index movement.

        Formula: owed = amount * index_delta / SCALE (floored)
        """
        _check_int(amount, "amount")
        _check_int(index_delta, "index_delta")
        if amount < 0 or index_delta < 0:
            raise ArithmeticOverflow("owed inputs must be non-negative")
        result = mul_div(amount, index_delta, SCALE)
        if result > AMOUNT_MAX:
            raise ArithmeticOverflow(f"owed amount {result} exceeds {AMOUNT_MAX}")
        return result

    @staticmethod
    def advance(index: int, increment: int) -> int:
        """Return ``index + increment``; indices only ever move forward."""
        if increment < 0:
            raise ArithmeticOverflow("index increments must be non-negative")
        return checked_add(index, increment)
