"""
Incremental value statistics for a moving window.

Uses Welford's recurrence so that the mean and the sum of squared
deviations are updated in O(1) per sample without large intermediate sums.
"""

import math
from typing import Iterable


class OnlineStats:
    """
    Running mean / variance accumulator (Welford).

    Attributes:
        count (int): Number of samples pushed.
        mean (float): Running mean.
        m2 (float): Running sum of squared deviations from the mean.

    Example:
        >>> stats = OnlineStats()
        >>> stats.extend([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0])
        >>> stats.mean
        5.0
    """

    __slots__ = ('count', 'mean', 'm2')

    def __init__(self):
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0

    def reset(self) -> None:
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0

    def push(self, x: float) -> None:
        """Add one sample."""
        self.count += 1
        if self.count == 1:
            self.mean = float(x)
            return

        old_mean = self.mean
        self.mean = old_mean + (x - old_mean) / self.count
        self.m2 += (x - old_mean) * (x - self.mean)

    def extend(self, values: Iterable[float]) -> None:
        for x in values:
            self.push(x)

    @property
    def variance(self) -> float:
        """Sample variance; 0.0 with fewer than 2 samples."""
        if self.count < 2:
            return 0.0
        return self.m2 / (self.count - 1)

    @property
    def std(self) -> float:
        """Sample standard deviation; 0.0 with fewer than 2 samples."""
        return math.sqrt(self.variance)

    def __repr__(self) -> str:
        return f"OnlineStats(count={self.count}, mean={self.mean:.6g}, std={self.std:.6g})"
