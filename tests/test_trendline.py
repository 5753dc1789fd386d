"""Tests for the linear trendline fit."""

import pytest

from thermoprofile.trendline import fit_linear_trendline


def test_exact_line():
    assert fit_linear_trendline({60: 1, 70: 2, 80: 3}) == {"slope": 0.1, "intercept": -5.0}


def test_flat_line():
    data = {20: 3.43, 21: 3.43, 22: 3.43, 23: 3.43, 24: 3.43}
    assert fit_linear_trendline(data) == {"slope": 0.0, "intercept": 3.43}


def test_noisy_data_matches_least_squares():
    data = {10: 4.1, 20: 3.0, 30: 2.2, 40: 0.9, 50: 0.1}

    result = fit_linear_trendline(data)

    # slope = (n*Sxy - Sx*Sy) / (n*Sxx - Sx^2) = (5*208 - 150*10.3) / (5*5500 - 150^2)
    assert result["slope"] == pytest.approx(-0.1, abs=0.005)
    assert result["intercept"] == pytest.approx(5.09, abs=0.005)


@pytest.mark.parametrize("data", [{}, {30: 2.0}])
def test_too_few_points(data):
    assert fit_linear_trendline(data) is None
