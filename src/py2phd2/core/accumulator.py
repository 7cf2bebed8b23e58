"""
Running guide-error statistics.

One Accumulator is kept per guide axis (RA and Dec). Samples are the raw
signed distances reported by GuideStep events since the last reset.
"""

from typing import List

import numpy as np


class Accumulator:
    """Growing sequence of scalar samples with stdev and peak."""

    def __init__(self):
        self._values: List[float] = []

    @property
    def count(self) -> int:
        return len(self._values)

    def add(self, value: float) -> None:
        self._values.append(float(value))

    def reset(self) -> None:
        self._values.clear()

    def stdev(self) -> float:
        """
        Sample standard deviation, (n - 1) denominator.

        Returns 0.0 with fewer than two samples. Rounding can push the
        variance slightly negative for near-constant samples; it is clamped
        at zero.
        """
        n = len(self._values)
        if n < 2:
            return 0.0

        values = np.asarray(self._values, dtype=np.float64)
        total = values.sum()
        mean = total / n
        variance = (np.dot(values, values) - total * mean) / (n - 1)
        return float(np.sqrt(max(0.0, variance)))

    def peak(self) -> float:
        """Largest absolute sample seen, 0.0 when empty."""
        if not self._values:
            return 0.0
        return float(np.max(np.abs(self._values)))
