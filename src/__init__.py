"""
Landscape Metrics - Moving-window landscape metrics for raster feature layers.

This package computes patch composition, shape and heterogeneity metrics in a
sliding window around every pixel of a tile: mean patch area, fractal
dimension, edge density, number of patches, effective mesh size and windowed
value statistics.

Main Classes:
    LandscapeMetricsAnalyzer: Runs the per-layer pipeline and collects results
    LandscapeMetricsConfig: Engine parameters

Convenience Functions:
    analyze: Load inputs from files, compute, report and write products

Example:
    >>> from landscape_metrics import LandscapeMetricsAnalyzer, LandscapeMetricsConfig, analyze
    >>>
    >>> # Using the class
    >>> config = LandscapeMetricsConfig(radius=2, operators=["GTE"], thresholds=[1])
    >>> analyzer = LandscapeMetricsAnalyzer.from_paths("features.tif", config=config)
    >>> summary_df, report = analyzer.generate_report()
    >>>
    >>> # Using the convenience function
    >>> summary_df, report = analyze(
    ...     feature_path="features.tif",
    ...     config_path="lsm.json",
    ...     output_dir="products"
    ... )
"""

from .analyzer import EngineResult, LandscapeMetricsAnalyzer, analyze
from .binarize import ThresholdOperator
from .config import LandscapeMetricsConfig
from .errors import (
    ConfigurationError,
    LandscapeMetricsError,
    LayerProcessingError,
    RasterShapeMismatch,
)
from .kernel import KernelGeometry, distance_kernel
from .labeling import PatchLabels, label_patches
from .layers import FeatureLayer, Tile
from .metrics import Metric, decode_fixed_point, encode_fixed_point
from .stats import OnlineStats

__version__ = "0.1.0"
__all__ = [
    "LandscapeMetricsAnalyzer",
    "LandscapeMetricsConfig",
    "EngineResult",
    "analyze",
    "FeatureLayer",
    "Tile",
    "Metric",
    "ThresholdOperator",
    "KernelGeometry",
    "distance_kernel",
    "OnlineStats",
    "PatchLabels",
    "label_patches",
    "encode_fixed_point",
    "decode_fixed_point",
    "ConfigurationError",
    "LandscapeMetricsError",
    "LayerProcessingError",
    "RasterShapeMismatch",
]
