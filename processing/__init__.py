import math

KIB = 1024
MIB = 1024 * 1024


def round_half_up(value: float) -> int:
    """Round a non-negative number to the nearest integer, halves rounding up."""
    return int(math.floor(value + 0.5))
