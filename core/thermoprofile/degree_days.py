"""
Degree-Day Accumulator

A day's degree-day value is its mean outdoor temperature minus a baseline
(65°). Negative values are negated into the cooling total, everything else
adds to the heating total, so heat - cool is always the signed sum.
"""

import logging
from datetime import date, datetime

import numpy as np

from .normalizer import local_time
from .rounding import round_to_int

logger = logging.getLogger(__name__)


class DegreeDayAccumulator:
    """Collects outdoor readings by local calendar day in scan order."""

    def __init__(self, baseline: float = 65.0, time_zone: str = "America/New_York"):
        """Initialize accumulator.

        Args:
            baseline: Baseline temperature in degrees
            time_zone: Local time zone deciding where days start
        """
        self.baseline = baseline
        self.time_zone = time_zone
        self.degree_days: list[float] = []  # One signed value per completed day

        self._date: date | None = None
        self._temperatures: list[int] = []

    def add(self, timestamp: datetime, outdoor_temperature: int | None) -> None:
        """Add a reading in tenths of a degree. Readings must arrive in time order."""
        day = local_time(timestamp, self.time_zone).date()

        if self._date is not None and day != self._date:
            self._close_day()
        self._date = day

        if outdoor_temperature is not None:
            self._temperatures.append(outdoor_temperature)

    def _close_day(self) -> None:
        if self._temperatures:
            mean = float(np.mean(self._temperatures)) / 10
            self.degree_days.append(mean - self.baseline)
        self._temperatures = []

    def totals(self) -> tuple[int | None, int | None]:
        """Return (heating, cooling) totals over completed days.

        Each total is rounded to a whole number, or None when no day
        contributed to it. The day still in progress is not counted.
        """
        heat = None
        cool = None
        for degree_day in self.degree_days:
            if degree_day < 0:
                cool = (cool or 0) - degree_day
            else:
                heat = (heat or 0) + degree_day

        return (
            round_to_int(heat) if heat is not None else None,
            round_to_int(cool) if cool is not None else None,
        )
