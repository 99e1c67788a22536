"""
Per-worker scratch state for the moving-window scan.

Patch-level arrays are sized to the number of labels of the current layer
and reused for every pixel a worker processes. Only the labels touched by
the previous window are zeroed between pixels, so a reset costs
O(patches in window) instead of O(patches in tile).

Areas and perimeters are counted in whole cells and cell sides. The
finalizer converts them to fractions of the window (``1/window_size`` per
cell, ``1/sqrt(window_size)`` per side), which keeps exact values such as a
fully covered window at exactly 1.0.
"""

from typing import List

import numpy as np

from .stats import OnlineStats


class WindowAccumulators:
    """
    Patch and value accumulators for one window placement.

    Invariant: after ``clear()`` every entry of ``patch_cells``,
    ``patch_edges`` and ``exists`` is zero/False.

    Attributes:
        patch_cells (np.ndarray): Cells per label inside the window.
        patch_edges (np.ndarray): Active/inactive cell sides per label inside
            the window.
        exists (np.ndarray): True for labels seen in the current window.
        touched (List[int]): Labels seen in the current window, in scan order.
        class_cells (int): Active cells of the window.
        edge_count (int): Active/inactive transitions inside the window.
        stats (OnlineStats): Mean/variance of valid sample values.
        max_value (float): Largest valid sample value (None before the first).
        log_sum (float): Sum of ln(value) over positive samples.
        log_count (int): Number of positive samples.
    """

    def __init__(self, n_labels: int):
        """
        Args:
            n_labels: Number of patch labels K; arrays are sized K+1 so that
                      labels index them directly.

        Raises:
            MemoryError: If the scratch arrays cannot be allocated.
        """
        self.patch_cells = np.zeros(n_labels + 1, dtype=np.int64)
        self.patch_edges = np.zeros(n_labels + 1, dtype=np.int64)
        self.exists = np.zeros(n_labels + 1, dtype=bool)
        self.touched: List[int] = []
        self.stats = OnlineStats()
        self._reset_scalars()

    def _reset_scalars(self) -> None:
        self.class_cells = 0
        self.edge_count = 0
        self.max_value = None
        self.log_sum = 0.0
        self.log_count = 0
        self.stats.reset()

    @property
    def n_labels(self) -> int:
        return len(self.patch_cells) - 1

    def touch(self, label: int) -> None:
        """Register a label as present in the current window."""
        self.touched.append(label)
        self.exists[label] = True

    def clear(self) -> None:
        """Reset the entries touched by the previous window and all scalars."""
        for label in self.touched:
            self.patch_cells[label] = 0
            self.patch_edges[label] = 0
            self.exists[label] = False
        self.touched.clear()
        self._reset_scalars()
