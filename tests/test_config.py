"""
test_config.py – Engine parameters
"""
import json

import pytest

from landscape_metrics import ConfigurationError, LandscapeMetricsConfig, Metric, ThresholdOperator


class TestDefaults:
    def test_defaults_are_valid(self):
        config = LandscapeMetricsConfig().validate()
        assert config.min_patch_size == 3
        assert config.connectivity == 8
        assert config.metrics == set(Metric)

    def test_scalars_become_lists(self):
        config = LandscapeMetricsConfig(operators="LTE", thresholds=5)
        assert config.operators == ["LTE"]
        assert config.thresholds == [5.0]


class TestValidation:
    @pytest.mark.parametrize("kwargs,field", [
        ({'radius': -1}, 'radius'),
        ({'kernel_shape': 'hexagon'}, 'kernel_shape'),
        ({'connectivity': 6}, 'connectivity'),
        ({'min_patch_size': 0}, 'min_patch_size'),
        ({'metrics': []}, 'metrics'),
        ({'nodata': 0}, 'nodata'),
        ({'nodata': -40000}, 'nodata'),
        ({'n_workers': 0}, 'n_workers'),
        ({'block_rows': 0}, 'block_rows'),
        ({'engine': 'cuda'}, 'engine'),
        ({'operators': ['GTE', 'EQ'], 'thresholds': [1]}, 'thresholds'),
    ])
    def test_invalid(self, kwargs, field):
        with pytest.raises(ConfigurationError) as exc:
            LandscapeMetricsConfig(**kwargs).validate()
        assert exc.value.field == field

    def test_layer_count(self):
        config = LandscapeMetricsConfig(operators=['GTE', 'EQ', 'LTE'], thresholds=[1, 2, 3])
        config.validate(n_layers=3)
        with pytest.raises(ConfigurationError):
            config.validate(n_layers=2)

    def test_unknown_metric(self):
        with pytest.raises(ConfigurationError):
            LandscapeMetricsConfig(metrics=['MPA', 'AREA'])


class TestLayerQuery:
    def test_broadcast(self):
        config = LandscapeMetricsConfig(operators=['>='], thresholds=[30])
        assert config.layer_query(0) == (ThresholdOperator.GTE, 30.0)
        assert config.layer_query(4) == (ThresholdOperator.GTE, 30.0)

    def test_per_layer(self):
        config = LandscapeMetricsConfig(operators=['GTE', 'EQ'], thresholds=[1, 2])
        assert config.layer_query(1) == (ThresholdOperator.EQ, 2.0)

    def test_unknown_operator(self):
        config = LandscapeMetricsConfig(operators=['BETWEEN'], thresholds=[1])
        operator, _ = config.layer_query(0)
        assert operator is None


class TestSerialization:
    def test_from_dict(self):
        config = LandscapeMetricsConfig.from_dict({
            'radius': 2,
            'kernel_shape': 'circle',
            'metrics': ['EDD', 'MPA'],
        })
        assert config.radius == 2
        assert config.metrics == {Metric.MPA, Metric.EDD}

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError) as exc:
            LandscapeMetricsConfig.from_dict({'radius': 1, 'window': 3})
        assert exc.value.field == 'window'

    def test_dict_round_trip(self):
        config = LandscapeMetricsConfig(radius=3, metrics=['NBR', 'GEO'], all_pixels=True)
        data = config.to_dict()
        assert data['metrics'] == ['NBR', 'GEO']
        assert LandscapeMetricsConfig.from_dict(data) == config

    def test_from_json(self, tmp_path):
        path = tmp_path / "lsm.json"
        path.write_text(json.dumps({'radius': 4, 'operators': ['LTE'], 'thresholds': [0.5]}))
        config = LandscapeMetricsConfig.from_json(path)
        assert config.radius == 4
        assert config.layer_query(0) == (ThresholdOperator.LTE, 0.5)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LandscapeMetricsConfig.from_json(tmp_path / "missing.json")
