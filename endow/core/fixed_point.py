"""
Fixed-point integer arithmetic for the treasury.

All ratios are plain Python ints scaled by a power of ten:

- PRECISION (1e18): parameters (burn limit, burn multiplier) and burn math
- ACC_PRECISION (1e24): per-share reward accumulators
- PERCENT_PRECISION (1e20): endowment percentage, where 1e20 == 100%

Division always rounds toward zero (floor, since operands are non-negative).
"""

PRECISION = 10**18
ACC_PRECISION = 10**24
PERCENT_PRECISION = 10**20


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute floor(a * b / denominator) without intermediate rounding.

    Raises:
        ZeroDivisionError: if denominator is zero
        ValueError: if any operand is negative
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div by zero")
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError(f"mul_div operands must be non-negative: {a}, {b}, {denominator}")
    return a * b // denominator


def accrued(amount: int, acc_per_share: int) -> int:
    """Reward accrued by `amount` units at accumulator value `acc_per_share`."""
    return amount * acc_per_share // ACC_PRECISION


def per_share(reward: int, total_staked: int) -> int:
    """Accumulator increment for distributing `reward` over `total_staked` units."""
    return mul_div(reward, ACC_PRECISION, total_staked)


def percent_of(amount: int, percent: int) -> int:
    """Portion of `amount` for a percentage scaled by PERCENT_PRECISION."""
    return mul_div(amount, percent, PERCENT_PRECISION)


def scale(amount: int, factor: int) -> int:
    """Multiply `amount` by a PRECISION-scaled factor."""
    return mul_div(amount, factor, PRECISION)
