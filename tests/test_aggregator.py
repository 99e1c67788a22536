"""
test_aggregator.py – Moving-window scan over whole tiles
"""
import numpy as np
import pytest

from landscape_metrics import FeatureLayer, LandscapeMetricsAnalyzer, LandscapeMetricsConfig, Metric


NODATA = -9999


def run(layers, **kwargs):
    params = dict(radius=1, operators=["GTE"], thresholds=[1], n_workers=2, block_rows=2)
    params.update(kwargs)
    config = LandscapeMetricsConfig(**params)
    return LandscapeMetricsAnalyzer(layers, config, verbose=False).compute()


class TestHomogeneousWindow:
    def test_no_edges_without_transitions(self):
        layer = FeatureLayer(np.ones((7, 7), dtype=np.int16), nodata=NODATA)
        result = run([layer])
        np.testing.assert_array_equal(result.get(Metric.EDD), 0)
        np.testing.assert_array_equal(result.get(Metric.NBR), 1)

    def test_interior_pixel_full_cover(self):
        layer = FeatureLayer(np.ones((7, 7), dtype=np.int16), nodata=NODATA)
        result = run([layer], radius=2)
        assert result.get(Metric.MPA)[3, 3] == 10000
        assert result.get(Metric.EMS)[3, 3] == 10000


class TestScanPolicies:
    def test_inactive_cells_skipped_by_default(self, two_patch_layer):
        result = run([two_patch_layer])
        for metric in Metric:
            assert result.get(metric)[4, 4] == NODATA

    def test_all_pixels(self, two_patch_layer):
        result = run([two_patch_layer], all_pixels=True)
        assert result.get(Metric.NBR)[4, 4] == 0
        assert result.get(Metric.MPA)[4, 4] == 0
        assert result.get(Metric.UCI)[4, 4] == 0
        assert result.get(Metric.AVG)[4, 4] == 0
        # only zeros in the window: no positive sample
        assert result.get(Metric.GEO)[4, 4] == NODATA

    def test_all_pixels_counts_neighbor_patches(self, two_patch_layer):
        result = run([two_patch_layer], all_pixels=True)
        # window of (3, 3) reaches the 3x3 block at (2, 2)
        assert result.get(Metric.NBR)[3, 3] == 1
        assert result.get(Metric.UCI)[3, 3] == 0

    def test_tile_edges_truncate_window(self, two_patch_layer):
        result = run([two_patch_layer])
        # corner pixel sees a 2x2 part of the 3x3 patch
        assert result.get(Metric.MPA)[0, 0] == int(4 / 9 * 10000)

    def test_circle_window(self, two_patch_layer):
        result = run([two_patch_layer], kernel_shape="circle")
        # 5-cell cross, fully inside the 3x3 patch
        assert result.get(Metric.MPA)[1, 1] == 10000
        assert result.get(Metric.EDD)[1, 1] == 0


class TestParallelism:
    def test_partitioning_does_not_change_results(self, random_layer):
        serial = run([random_layer], n_workers=1, block_rows=100)
        parallel = run([random_layer], n_workers=4, block_rows=1)
        for metric in Metric:
            np.testing.assert_array_equal(serial.get(metric), parallel.get(metric))

    def test_pixel_count(self, random_layer):
        result = run([random_layer], min_patch_size=1)
        active = (random_layer.values >= 1) & random_layer.validity
        assert result.pixels["random"] == int(active.sum())


class TestCircleEdges:
    def test_edges_towards_cells_outside_the_circle(self):
        values = np.ones((7, 7), dtype=np.int16)
        values[5, 4] = 0
        layer = FeatureLayer(values, nodata=NODATA)
        result = run([layer], radius=2, kernel_shape="circle", min_patch_size=1)
        # (4, 4) down and (5, 3) right border the inactive cell at (5, 4),
        # which lies outside the 13-cell circle around (3, 3)
        assert result.get(Metric.EDD)[3, 3] == int(2 / 13 * 10000)

    def test_engines_agree(self):
        values = np.ones((7, 7), dtype=np.int16)
        values[5, 4] = 0
        layer = FeatureLayer(values, nodata=NODATA)
        compiled = run([layer], radius=2, kernel_shape="circle", min_patch_size=1)
        reference = run([layer], radius=2, kernel_shape="circle", min_patch_size=1, engine="python")
        np.testing.assert_array_equal(compiled.get(Metric.EDD), reference.get(Metric.EDD))


class TestEngines:
    @pytest.mark.parametrize("kernel_shape", ["square", "circle"])
    @pytest.mark.parametrize("all_pixels", [False, True])
    def test_compiled_matches_reference(self, random_layer, kernel_shape, all_pixels):
        params = dict(radius=2, kernel_shape=kernel_shape, all_pixels=all_pixels, min_patch_size=2)
        compiled = run([random_layer], engine="numba", **params)
        reference = run([random_layer], engine="python", **params)

        assert compiled.pixels == reference.pixels
        for metric in Metric:
            # ln/exp may differ in the last bit between numba and CPython
            atol = 1 if metric in (Metric.FDI, Metric.GEO) else 0
            np.testing.assert_allclose(
                compiled.get(metric), reference.get(metric), atol=atol, rtol=0
            )

    def test_float_values_with_nan(self):
        values = np.array([
            [1.5, 2.0, np.nan, 0.0],
            [3.0, 4.5, 2.5, -9999.0],
            [0.0, 1.0, 2.0, 3.0],
        ])
        layer = FeatureLayer(values, nodata=NODATA, name="float")
        compiled = run([layer], min_patch_size=1, all_pixels=True, engine="numba")
        reference = run([layer], min_patch_size=1, all_pixels=True, engine="python")
        for metric in Metric:
            atol = 1 if metric in (Metric.FDI, Metric.GEO) else 0
            np.testing.assert_allclose(
                compiled.get(metric), reference.get(metric), atol=atol, rtol=0
            )
