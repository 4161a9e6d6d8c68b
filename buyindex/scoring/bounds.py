"""Numeric helpers shared by the scoring models."""

import math
from typing import Any


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Limit ``value`` to ``[low, high]``."""
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``2.5 → 3``, ``-2.5 → -2``).

    Python's ``round`` uses banker's rounding, which would make scores such
    as 62.5 land on 62.
    """
    return int(math.floor(value + 0.5))


def bounded_score(value: float) -> int:
    """Clamp to ``[0, 100]`` and round half-up."""
    return round_half_up(clamp(value, 0.0, 100.0))


def is_finite_number(value: Any) -> bool:
    """True for real ints/floats that are not NaN or infinite (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
