"""
rounding.py — Quarter-unit FTE arithmetic

One slot is 0.25 FTE, so every FTE comparison in the allocator happens on a
0.25 grid. The midpoint rule is the one the allocator uses when deciding
whether a team is "still short a slot": a value only rounds up once it is
strictly past the middle of its quarter interval.

  1.03 → 1.0    1.15 → 1.25    0.96 → 1.0    0.6 → 0.5    0.1 → 0.0
"""

import math

from pca_allocator.allocation_config import FTE_PER_SLOT, FTE_EPSILON


def round_to_nearest_quarter_with_midpoint(value: float) -> float:
    """Round to 0.25, rounding up only when strictly above the midpoint."""
    if value < 0:
        return -round_to_nearest_quarter_with_midpoint(-value)

    lower = math.floor(value / FTE_PER_SLOT) * FTE_PER_SLOT
    upper = lower + FTE_PER_SLOT
    midpoint = (lower + upper) / 2
    if value > midpoint:
        return upper
    return lower


def round_to_nearest_quarter(value: float) -> float:
    """Conventional half-up rounding to the nearest 0.25."""
    return math.floor(value / FTE_PER_SLOT + 0.5) * FTE_PER_SLOT


def round_down_to_quarter(value: float) -> float:
    return math.floor(value / FTE_PER_SLOT) * FTE_PER_SLOT


def slots_for_fte(value: float) -> int:
    """Number of whole slots an FTE amount covers (0.74 → 2, 0.75 → 3)."""
    if value <= 0:
        return 0
    return int(math.floor(value / FTE_PER_SLOT + FTE_EPSILON))


def format_fte(value: float) -> str:
    """
    Display form of an FTE value.

    0.25 keeps both decimals, single-decimal values (0.6, 1.0) show one
    decimal, everything else shows two.
    """
    if abs(value - 0.25) < 0.001:
        return "0.25"
    rounded = math.floor(value * 10 + 0.5) / 10
    if abs(value - rounded) < 0.001:
        return f"{rounded:.1f}"
    return f"{value:.2f}"
