"""Shared fixtures: small synthetic tiles."""

import numpy as np
import pytest

from landscape_metrics import FeatureLayer, LandscapeMetricsConfig


NODATA = -9999


@pytest.fixture
def block_layer():
    """5x5 tile, a 3x3 block of ones in the center, nodata elsewhere."""
    values = np.full((5, 5), NODATA, dtype=np.int16)
    values[1:4, 1:4] = 1
    return FeatureLayer(values, nodata=NODATA, name="block")


@pytest.fixture
def two_patch_layer():
    """9x9 tile with two separate patches, a 3x3 block and a 2x2 block."""
    values = np.zeros((9, 9), dtype=np.int16)
    values[0:3, 0:3] = 1
    values[6:8, 6:8] = 1
    return FeatureLayer(values, nodata=NODATA, name="two_patches")


@pytest.fixture
def random_layer():
    rng = np.random.default_rng(42)
    values = rng.integers(0, 4, size=(20, 17)).astype(np.int16)
    values[rng.random(values.shape) < 0.05] = NODATA
    return FeatureLayer(values, nodata=NODATA, name="random")


@pytest.fixture
def config():
    return LandscapeMetricsConfig(
        radius=1, operators=["GTE"], thresholds=[1], n_workers=2, block_rows=2
    )
