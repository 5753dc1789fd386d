"""Rounding helpers.

Python's built-in round() rounds halves to even. Profile values round halves
away from zero so that, for example, an outdoor reading of 32.5° lands in
the 33° bucket and -32.5° lands in the -33° bucket.
"""

from decimal import ROUND_HALF_UP, Decimal


def round_half_away(value: float, digits: int = 0) -> float:
    """Round to `digits` decimals with halves going away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    # repr() gives the shortest string that round-trips, so 0.285 stays 0.285.
    # float() first: numpy scalars repr as "np.float64(...)"
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def round_to_int(value: float) -> int:
    """Round half away from zero to an int."""
    return int(round_half_away(value))


def as_bucket(value: float) -> float | int:
    """Collapse integral floats to int so they key buckets as whole degrees."""
    if float(value).is_integer():
        return int(value)
    return value
