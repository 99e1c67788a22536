"""
test_kernel.py – Window geometry
"""
import numpy as np
import pytest

from landscape_metrics import ConfigurationError, KernelGeometry, distance_kernel


class TestDistanceKernel:
    def test_shape_and_center(self):
        kdist = distance_kernel(2)
        assert kdist.shape == (5, 5)
        assert kdist[2, 2] == 0.0

    def test_corner_distance(self):
        assert distance_kernel(1)[0, 0] == pytest.approx(np.sqrt(2))

    def test_radius_zero(self):
        np.testing.assert_array_equal(distance_kernel(0), [[0.0]])

    def test_negative_radius(self):
        with pytest.raises(ConfigurationError):
            distance_kernel(-1)


class TestKernelGeometry:
    def test_square_window_size(self):
        kernel = KernelGeometry(2, 'square')
        assert kernel.window_size == 25
        assert kernel.area_unit == pytest.approx(1 / 25)
        assert kernel.edge_unit == pytest.approx(0.2)

    def test_circle_excludes_corners(self):
        kernel = KernelGeometry(2, 'circle')
        # offsets with ii² + jj² <= 4
        assert kernel.window_size == 13
        assert (2, 2) not in kernel.offsets
        assert (0, 2) in kernel.offsets

    def test_radius_one_circle(self):
        kernel = KernelGeometry(1, 'circle')
        assert kernel.window_size == 5
        assert kernel.width == 3

    def test_inner_sides_square(self):
        kernel = KernelGeometry(1, 'square')
        sides = dict(zip(kernel.offsets, kernel.inner_sides))
        # down, up, right, left
        assert sides[(0, 0)] == (True, True, True, True)
        assert sides[(1, 0)] == (False, True, True, True)
        assert sides[(-1, -1)] == (True, False, True, False)

    def test_inner_sides_circle(self):
        kernel = KernelGeometry(2, 'circle')
        sides = dict(zip(kernel.offsets, kernel.inner_sides))
        assert sides[(0, 2)] == (True, True, False, True)
        # (2, 1) is outside the circle, the side towards it still counts
        assert sides[(1, 1)] == (True, True, True, True)
        assert sides[(2, 0)] == (False, True, True, True)

    def test_invalid_shape(self):
        with pytest.raises(ConfigurationError):
            KernelGeometry(1, 'hexagon')
