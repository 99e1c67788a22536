"""
Window geometry for moving-window landscape metrics.

The neighborhood around every output pixel is a square of side ``2r+1``.
For circular windows the corners are carved out by comparing each offset's
Euclidean distance to the radius.
"""

from typing import List, Tuple

import numpy as np

from .errors import ConfigurationError


KERNEL_SHAPES = ("square", "circle")


def distance_kernel(radius: int) -> np.ndarray:
    """
    Pre-compute the distance of every window offset to the window center.

    Args:
        radius: Window radius in pixels (r >= 0).

    Returns:
        np.ndarray: ``(2r+1, 2r+1)`` float array of Euclidean distances.

    Raises:
        ConfigurationError: If radius is negative.

    Example:
        >>> distance_kernel(1)[0, 0]
        1.4142135623730951
    """
    if radius < 0:
        raise ConfigurationError(f"radius must be >= 0, got {radius}", field="radius")

    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    ii, jj = np.meshgrid(offsets, offsets, indexing='ij')
    return np.sqrt(ii ** 2 + jj ** 2)


class KernelGeometry:
    """
    Offsets and normalization constants of a square or circular window.

    Attributes:
        radius (int): Window radius in pixels.
        shape (str): 'square' or 'circle'.
        distances (np.ndarray): Output of ``distance_kernel(radius)``.
        offsets (List[Tuple[int, int]]): Row/column offsets included in the window,
            in row-major scan order.
        inner_sides (List[Tuple[bool, bool, bool, bool]]): Per offset, whether an
            edge may be counted on the down/up/right/left side (not on the
            border of the bounding square).
        window_size (int): Number of included offsets.
        area_unit (float): Area increment per cell, ``1 / window_size``.
        edge_unit (float): Edge increment per cell side, ``1 / sqrt(window_size)``.
    """

    def __init__(self, radius: int, shape: str = 'square'):
        if shape not in KERNEL_SHAPES:
            raise ConfigurationError(
                f"Invalid kernel shape '{shape}'. Use 'square' or 'circle'.",
                field="kernel_shape"
            )

        self.radius = int(radius)
        self.shape = shape
        self.distances = distance_kernel(self.radius)

        self.offsets: List[Tuple[int, int]] = []
        for ki, ii in enumerate(range(-self.radius, self.radius + 1)):
            for kj, jj in enumerate(range(-self.radius, self.radius + 1)):
                # outside the circular window
                if shape == 'circle' and self.distances[ki, kj] > self.radius:
                    continue
                self.offsets.append((ii, jj))

        # An edge is not counted across the outer border of the bounding
        # square in that direction. Cells just outside a circular window
        # still close the edges of the cells inside it.
        # Order: down, up, right, left.
        r = self.radius
        self.inner_sides: List[Tuple[bool, bool, bool, bool]] = [
            (ii != r, ii != -r, jj != r, jj != -r)
            for ii, jj in self.offsets
        ]

        self.window_size = len(self.offsets)
        self.area_unit = 1.0 / self.window_size
        self.edge_unit = float(np.sqrt(self.area_unit))

    @property
    def width(self) -> int:
        """Side length of the bounding square."""
        return 2 * self.radius + 1

    def __repr__(self) -> str:
        return (f"KernelGeometry(radius={self.radius}, shape='{self.shape}', "
                f"window_size={self.window_size})")
