"""
Puzzle Forge - Numeric helpers
Rounding shared by calibration, scoring and batch progressions.
"""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going up (4.5 -> 5, 70.5 -> 71)."""
    return int(math.floor(value + 0.5))
