"""
Fixed-point constants and checked integer arithmetic.

All token amounts are integers in the token's smallest unit. Accumulators
are scaled by ACC_SCALE; products of amounts and accumulators are kept at
that scale until a payout is made.
"""

from hummus.staking.core.errors import ArithmeticOverflow

ACC_SCALE = 10 ** 12

# Parts per 1000
REPARTITION_PRECISION = 1000
BOOST_PRECISION = 1000

MAX_UINT256 = 2 ** 256 - 1


def checked(value: int, label: str = "value") -> int:
    """Return value if it fits in an unsigned 256-bit integer."""
    if value < 0 or value > MAX_UINT256:
        raise ArithmeticOverflow(f"{label} out of range: {value}")
    return value


def checked_add(a: int, b: int, label: str = "value") -> int:
    return checked(a + b, label)


def checked_sub(a: int, b: int, label: str = "value") -> int:
    return checked(a - b, label)


def checked_mul(a: int, b: int, label: str = "value") -> int:
    return checked(a * b, label)


def mul_div(a: int, b: int, denominator: int, label: str = "value") -> int:
    """floor(a * b / denominator), failing if the intermediate product overflows."""
    if denominator == 0:
        raise ArithmeticOverflow(f"{label}: division by zero")
    return checked(a * b, label) // denominator


def to_units(scaled: int) -> int:
    """Whole token units held in a value scaled by ACC_SCALE."""
    return scaled // ACC_SCALE
