"""Linear trendline over a stage's outdoor temperature buckets."""

import numpy as np

from .rounding import round_half_away


def fit_linear_trendline(data: dict) -> dict | None:
    """Ordinary least-squares fit of rate (y) against outdoor temperature (x).

    Args:
        data: {outdoor_temperature: rate}

    Returns:
        {"slope", "intercept"} rounded to 2 decimals, or None with fewer than
        two points
    """
    # Requires at least two points
    if len(data) < 2:
        return None

    x = np.array(list(data.keys()), dtype=float)
    y = np.array(list(data.values()), dtype=float)
    n = len(x)

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_x_squared = (x ** 2).sum()

    denominator = n * sum_x_squared - sum_x ** 2
    if denominator == 0:
        return None

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    return {
        "slope": round_half_away(slope, 2),
        "intercept": round_half_away(intercept, 2),
    }
