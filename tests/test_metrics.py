"""
test_metrics.py – Metric formulas and fixed-point encoding
"""
import math

import numpy as np
import pytest

from landscape_metrics import ConfigurationError, Metric, decode_fixed_point, encode_fixed_point
from landscape_metrics.accumulators import WindowAccumulators
from landscape_metrics.metrics import INT16_MAX, MetricFinalizer


NODATA = -9999


def window(patches, class_cells=None, window_size=9):
    """Accumulators holding the given {label: (cells, edges)}."""
    acc = WindowAccumulators(max(patches) if patches else 1)
    for label, (cells, edges) in patches.items():
        acc.touch(label)
        acc.patch_cells[label] = cells
        acc.patch_edges[label] = edges
    acc.class_cells = sum(c for c, _ in patches.values()) if class_cells is None else class_cells
    acc.edge_count = sum(e for _, e in patches.values())
    return acc


class TestMetricParse:
    def test_all(self):
        assert Metric.parse(None) == set(Metric)
        assert Metric.parse("all") == set(Metric)

    def test_names(self):
        assert Metric.parse(["mpa", "EDD"]) == {Metric.MPA, Metric.EDD}

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            Metric.parse(["MPA", "SHAPE"])

    def test_scaled(self):
        assert Metric.FDI.scaled
        assert not Metric.NBR.scaled


class TestFixedPoint:
    def test_round_trip(self):
        for v in np.linspace(0.0, 3.2767, 2001):
            assert abs(decode_fixed_point(encode_fixed_point(v)) - v) <= 1e-4 + 1e-9

    def test_truncates(self):
        assert encode_fixed_point(0.12349) == 1234

    def test_saturates(self):
        assert encode_fixed_point(5.0) == INT16_MAX

    def test_nodata_never_produced(self):
        finalizer = MetricFinalizer({Metric.AVG}, 9, NODATA)
        acc = WindowAccumulators(1)
        acc.stats.push(float(NODATA))
        assert finalizer.finalize(acc, 0)[Metric.AVG] == NODATA + 1


class TestPatchMetrics:
    def test_single_patch_mpa_and_ems(self):
        finalizer = MetricFinalizer(set(Metric), 9, NODATA)
        acc = window({1: (4, 4)})
        out = finalizer.finalize(acc, 1)
        assert out[Metric.NBR] == 1
        assert out[Metric.MPA] == int(4 / 9 * 10000)
        assert out[Metric.EMS] == int((4 / 9) ** 2 * 10000)

    def test_full_window_mpa(self):
        finalizer = MetricFinalizer({Metric.MPA, Metric.EMS}, 9, NODATA)
        out = finalizer.finalize(window({1: (9, 0)}), 1)
        assert out[Metric.MPA] == 10000
        assert out[Metric.EMS] == 10000

    def test_area_weighted_mpa(self):
        finalizer = MetricFinalizer({Metric.MPA}, 9, NODATA)
        acc = window({1: (6, 2), 2: (3, 2)})
        # shares 2/3 and 1/3 -> (2/3*6 + 1/3*3) / 9
        assert finalizer.mean_patch_area(acc) == pytest.approx(5 / 9)
        assert finalizer.finalize(acc, 0)[Metric.MPA] == 5555

    def test_mpa_without_class_area(self):
        finalizer = MetricFinalizer({Metric.MPA}, 9, NODATA)
        acc = WindowAccumulators(1)
        assert finalizer.finalize(acc, 0)[Metric.MPA] == 0

    def test_fdi_excludes_single_pixel_patch(self):
        finalizer = MetricFinalizer({Metric.FDI}, 25, NODATA)
        acc = window({1: (1, 4), 2: (9, 12)})
        # only the 9-pixel patch: 2 ln(0.25 * 12) / ln(9) = 1
        assert finalizer.fractal_dimension(acc) == pytest.approx(1.0)

    def test_fdi_weighting(self):
        finalizer = MetricFinalizer({Metric.FDI}, 25, NODATA)
        acc = window({1: (9, 12), 2: (4, 8)})
        fd1 = 2 * math.log(3) / math.log(9)
        fd2 = 2 * math.log(2) / math.log(4)
        expected = (9 * fd1 + 4 * fd2) / 13
        assert finalizer.fractal_dimension(acc) == pytest.approx(expected)

    def test_fdi_without_contribution(self):
        finalizer = MetricFinalizer({Metric.FDI}, 9, NODATA)
        assert finalizer.finalize(window({1: (1, 4)}), 1)[Metric.FDI] == 0
        # no edge inside the window
        assert finalizer.finalize(window({1: (9, 0)}), 1)[Metric.FDI] == 0

    def test_edge_density(self):
        finalizer = MetricFinalizer({Metric.EDD}, 9, NODATA)
        acc = window({1: (4, 4)})
        assert finalizer.total_edge_length(acc) == pytest.approx(4 / 3)
        assert finalizer.finalize(acc, 1)[Metric.EDD] == 4444


class TestValueMetrics:
    def test_geo_without_positive_samples_is_nodata(self):
        finalizer = MetricFinalizer({Metric.GEO}, 9, NODATA)
        acc = WindowAccumulators(1)
        assert finalizer.finalize(acc, 0)[Metric.GEO] == NODATA

    def test_geo(self):
        finalizer = MetricFinalizer({Metric.GEO}, 9, NODATA)
        acc = WindowAccumulators(1)
        for v in (2.0, 3.0):
            acc.log_sum += math.log(v)
            acc.log_count += 1
        # sqrt(6) = 2.449
        assert finalizer.finalize(acc, 0)[Metric.GEO] == 2

    def test_avg_std_max(self):
        finalizer = MetricFinalizer({Metric.AVG, Metric.STD, Metric.MAX}, 9, NODATA)
        acc = WindowAccumulators(1)
        for v in (1, 2, 4):
            acc.stats.push(v)
        acc.max_value = 4
        out = finalizer.finalize(acc, 0)
        # mean 2.33, std 1.53
        assert out == {Metric.AVG: 2, Metric.STD: 1, Metric.MAX: 4}

    def test_empty_window_values(self):
        finalizer = MetricFinalizer({Metric.AVG, Metric.STD, Metric.MAX}, 9, NODATA)
        out = finalizer.finalize(WindowAccumulators(1), 0)
        assert out == {Metric.AVG: NODATA, Metric.STD: 0, Metric.MAX: NODATA}

    def test_only_enabled_metrics(self):
        finalizer = MetricFinalizer({Metric.NBR, Metric.UCI}, 9, NODATA)
        out = finalizer.finalize(window({3: (4, 4)}), 3)
        assert set(out) == {Metric.NBR, Metric.UCI}
        assert out[Metric.UCI] == 3

    def test_uci_saturates(self):
        finalizer = MetricFinalizer({Metric.UCI}, 9, NODATA)
        out = finalizer.finalize(window({1: (4, 4)}), 40000)
        assert out[Metric.UCI] == INT16_MAX
