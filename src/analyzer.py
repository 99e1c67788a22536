"""
LandscapeMetricsAnalyzer: moving-window landscape metrics over feature layers.

This module provides the LandscapeMetricsAnalyzer class, the entry point that
runs the per-layer pipeline and collects the results:

    1. Binarization: valid cells that satisfy the layer's threshold predicate
       become "active".
    2. Patch labeling: connected active cells form patches, small ones are
       dropped.
    3. Window scan: for every pixel, patch and value statistics of the
       surrounding window are accumulated and turned into up to ten metrics
       (MPA, UCI, FDI, EDD, NBR, EMS, AVG, STD, GEO, MAX).

Layers are processed one after the other; within a layer the window scan runs
in parallel. A layer either gets all of its metrics or stays entirely nodata.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .aggregator import WindowAggregator
from .binarize import binarize_layer, valid_cells
from .config import LandscapeMetricsConfig
from .errors import LayerProcessingError, RasterShapeMismatch
from .kernel import KernelGeometry
from .labeling import label_patches
from .layers import FeatureLayer, Tile, check_layers, load_feature_layers, load_processing_mask
from .metrics import INT16_MAX, Metric, MetricFinalizer, decode_fixed_point
from .products import MetricRasters, ProductBinding


# =============================================================================
# RESULT CONTAINER
# =============================================================================


@dataclass
class EngineResult:
    """
    Outcome of one engine run.

    Attributes:
        rasters: Product stacks per metric, shape (n_layers, height, width).
                 Empty if the products could not be allocated.
        layer_names: Feature layer names, in band order.
        computed_layers: Layers whose metrics were fully computed.
        skipped_layers: Layers left at nodata for data reasons (no patch).
        failures: One record per failure: {'layer', 'stage', 'reason'}.
        pixels: Number of pixels written per computed layer.
    """
    rasters: MetricRasters
    layer_names: List[str]
    computed_layers: List[str] = field(default_factory=list)
    skipped_layers: List[Dict[str, str]] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    pixels: Dict[str, int] = field(default_factory=dict)

    @property
    def n_failures(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return self.n_failures == 0

    def get(self, metric: Union[Metric, str], layer: Union[int, str] = 0) -> np.ndarray:
        """
        2-D product of one metric and layer.

        Args:
            metric: Metric member or name (e.g. 'MPA').
            layer: Layer index or name.
        """
        metric = Metric(metric.upper()) if isinstance(metric, str) else metric
        if metric not in self.rasters:
            raise KeyError(f"Metric {metric.value} was not computed")
        index = self.layer_names.index(layer) if isinstance(layer, str) else layer
        return self.rasters[metric][index]


# =============================================================================
# CLASS DEFINITION
# =============================================================================


class LandscapeMetricsAnalyzer:
    """
    Computes moving-window landscape metrics for a set of feature layers.

    Attributes:
        layers (List[FeatureLayer]): Feature layers sharing one grid.
        config (LandscapeMetricsConfig): Validated engine parameters.
        tile (Tile): Grid of the layers.
        processing_mask (Optional[np.ndarray]): Cells to process (True).
        kernel (KernelGeometry): Window geometry derived from the config.
        products (ProductBinding): Output stacks of the last run.

    Example:
        >>> layers = [FeatureLayer(values, nodata=-9999, name="tree_cover")]
        >>> config = LandscapeMetricsConfig(radius=2, operators=["GTE"], thresholds=[30])
        >>> analyzer = LandscapeMetricsAnalyzer(layers, config)
        >>> result = analyzer.compute()
        >>> mpa = result.get("MPA", "tree_cover")
    """

    def __init__(
        self,
        layers: Sequence[FeatureLayer],
        config: Optional[LandscapeMetricsConfig] = None,
        processing_mask: Optional[np.ndarray] = None,
        tile: Optional[Tile] = None,
        verbose: bool = True
    ):
        """
        Initialize the analyzer and validate all inputs.

        Args:
            layers: Feature layers, all of the same shape.
            config: Engine parameters (defaults if None).
            processing_mask: Optional boolean mask; False cells are never
                             processed and stay nodata.
            tile: Grid description (derived from the layer shape if None).
            verbose: Print progress information.

        Raises:
            ConfigurationError: If a parameter is invalid or rasters do not
                                share one shape. Nothing is allocated then.
        """
        self.layers = list(layers)
        self.config = (config or LandscapeMetricsConfig()).validate(n_layers=len(self.layers))
        self.verbose = verbose

        shape = check_layers(self.layers)
        self.tile = tile or Tile(*shape)
        if self.tile.shape != shape:
            raise RasterShapeMismatch("tile", self.tile.shape, shape)

        if processing_mask is not None:
            processing_mask = np.asarray(processing_mask, dtype=bool)
            if processing_mask.shape != shape:
                raise RasterShapeMismatch("processing_mask", shape, processing_mask.shape)
        self.processing_mask = processing_mask

        self.kernel = KernelGeometry(self.config.radius, self.config.kernel_shape)
        self.products = ProductBinding(
            self.config.metrics,
            [layer.name for layer in self.layers],
            self.tile,
            self.config.nodata,
            self.config.basename
        )
        self._result: Optional[EngineResult] = None

        self._log("=" * 60)
        self._log("LandscapeMetricsAnalyzer Initialized")
        self._log("=" * 60)
        self._log(f"  Layers:     {len(self.layers)} ({', '.join(l.name for l in self.layers)})")
        self._log(f"  Tile:       {self.tile.dirname} {self.tile.height}x{self.tile.width}")
        self._log(f"  Window:     {self.kernel.shape}, radius {self.kernel.radius} "
                  f"({self.kernel.window_size} cells)")
        self._log(f"  Metrics:    {', '.join(m.value for m in self.products.metrics)}")
        self._log(f"  Mask:       {'provided' if processing_mask is not None else 'Not provided'}")
        self._log("=" * 60)

    @classmethod
    def from_paths(
        cls,
        feature_path: Union[str, Path],
        mask_path: Optional[Union[str, Path]] = None,
        config: Optional[LandscapeMetricsConfig] = None,
        bands: Optional[Sequence[int]] = None,
        verbose: bool = True
    ) -> "LandscapeMetricsAnalyzer":
        """
        Create an analyzer from a feature raster and an optional mask file.

        Args:
            feature_path: Raster with one feature layer per band.
            mask_path: Raster or GeoJSON processing mask (optional).
            config: Engine parameters.
            bands: 1-based bands to use (default: all).
            verbose: Print progress information.
        """
        layers, tile = load_feature_layers(feature_path, bands)
        mask = load_processing_mask(mask_path, tile) if mask_path is not None else None
        return cls(layers, config, processing_mask=mask, tile=tile, verbose=verbose)

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    # =========================================================================
    # ENGINE
    # =========================================================================

    def compute(self) -> EngineResult:
        """
        Compute all enabled metrics for all feature layers.

        Returns:
            EngineResult: Products and a structured account of failures. If the
            products cannot be allocated, ``rasters`` is empty and the failure
            count says how many products failed.
        """
        names = [layer.name for layer in self.layers]
        result = EngineResult(rasters={}, layer_names=names)

        errors = self.products.allocate()
        if errors > 0:
            result.failures.extend(
                {'layer': None, 'stage': 'allocate', 'reason': 'MemoryError'} for _ in range(errors)
            )
            self._result = result
            return result

        result.rasters = self.products.rasters
        finalizer = MetricFinalizer(self.config.metrics, self.kernel.window_size, self.config.nodata)
        aggregator = WindowAggregator(
            self.kernel,
            finalizer,
            all_pixels=self.config.all_pixels,
            n_workers=self.config.n_workers,
            block_rows=self.config.block_rows,
            engine=self.config.engine,
            verbose=self.verbose
        )

        for index, layer in enumerate(self.layers):
            self._log(f"\n[LAYER] {layer.name} ({index + 1}/{len(self.layers)})")
            try:
                status = self._process_layer(index, layer, aggregator, result)
            except LayerProcessingError as e:
                # keep the layer consistent: all nodata
                self.products.reset_layer(index)
                print(f"[ERROR] {e}")
                result.failures.append({'layer': e.layer, 'stage': e.stage, 'reason': e.reason})
                continue

            if status is not None:
                self._log(f"[SKIP] {layer.name}: {status}")
                result.skipped_layers.append({'name': layer.name, 'reason': status})
            else:
                result.computed_layers.append(layer.name)

        if result.failures:
            print(f"[WARNING] {result.n_failures} layers failed")

        self._result = result
        return result

    def _process_layer(
        self,
        index: int,
        layer: FeatureLayer,
        aggregator: WindowAggregator,
        result: EngineResult
    ) -> Optional[str]:
        """
        Binarize, label and scan one layer.

        Returns:
            Optional[str]: Reason why the layer was skipped, None if computed.

        Raises:
            LayerProcessingError: If labeling fails or the scan runs out of memory.
        """
        operator, threshold = self.config.layer_query(index)
        if operator is None:
            print(f"[WARNING] Unknown threshold operator for {layer.name}, layer is inactive")

        usable = valid_cells(layer.validity, self.processing_mask, self.config.exclude_invalid)
        active = binarize_layer(layer.values, usable, operator, threshold)
        self._log(f"  Active cells: {int(active.sum())} / {active.size}")

        try:
            patches = label_patches(active, self.config.min_patch_size, self.config.connectivity)
        except Exception as e:
            raise LayerProcessingError(layer.name, 'label', f"{type(e).__name__}: {e}") from e

        self._log(f"  Patches: {patches.count} (min size {self.config.min_patch_size} px)")
        if patches.count < 1:
            return "no patches"
        if patches.count > INT16_MAX:
            print(f"[WARNING] {layer.name}: {patches.count} patches, UCI saturates at {INT16_MAX}")

        try:
            written = aggregator.scan(
                layer.values, usable, active, patches.labels, patches.count, layer.nodata,
                self.products.layer_outputs(index), desc=f"Scanning {layer.name}"
            )
        except MemoryError as e:
            raise LayerProcessingError(layer.name, 'scan', f"MemoryError: {e}") from e

        result.pixels[layer.name] = written
        self._log(f"  → {written} pixels computed")
        return None

    # =========================================================================
    # REPORT GENERATION
    # =========================================================================

    def summarize(self, result: Optional[EngineResult] = None) -> pd.DataFrame:
        """
        Summary statistics per layer and metric.

        Values are decoded (fixed-point metrics divided by 10000) and only
        cells that are not nodata are used.

        Returns:
            pd.DataFrame: Columns layer, metric, valid_cells, mean, min, max.
        """
        result = result or self._result
        if result is None:
            raise ValueError("No result available. Run compute() first.")

        rows = []
        for metric, stack in result.rasters.items():
            for index, name in enumerate(result.layer_names):
                band = stack[index]
                valid = band[band != self.config.nodata].astype(np.float64)
                if metric.scaled:
                    valid = decode_fixed_point(valid)

                rows.append({
                    'layer': name,
                    'metric': metric.value,
                    'valid_cells': int(valid.size),
                    'mean': float(valid.mean()) if valid.size else np.nan,
                    'min': float(valid.min()) if valid.size else np.nan,
                    'max': float(valid.max()) if valid.size else np.nan,
                })

        return pd.DataFrame(rows, columns=['layer', 'metric', 'valid_cells', 'mean', 'min', 'max'])

    def generate_report(
        self,
        output_path: Optional[str] = None
    ) -> Tuple[pd.DataFrame, Dict[str, Any]]:
        """
        Run the engine and summarize the results.

        Args:
            output_path: Optional path to save a JSON report; a CSV summary is
                         written next to it.

        Returns:
            Tuple[pd.DataFrame, Dict[str, Any]]:
                - DataFrame with one row per layer and metric
                - Dictionary with metadata, layer status and failures
        """
        self._log("\n" + "=" * 60)
        self._log("GENERATING LANDSCAPE METRICS REPORT")
        self._log("=" * 60)

        result = self._result or self.compute()
        summary_df = self.summarize(result)

        report: Dict[str, Any] = {
            'metadata': {
                'tile': self.tile.dirname,
                'shape': list(self.tile.shape),
                'window_size': self.kernel.window_size,
                'config': self.config.to_dict(),
            },
            'computed_layers': result.computed_layers,
            'skipped_layers': result.skipped_layers,
            'failures': result.failures,
            'pixels': result.pixels,
            'summary': summary_df.to_dict(orient='records'),
        }

        self._log("\n" + "=" * 60)
        self._log("REPORT SUMMARY")
        self._log("=" * 60)
        self._log(f"Computed: {len(result.computed_layers)} layers")
        self._log(f"Skipped: {len(result.skipped_layers)} layers")
        self._log(f"Failures: {result.n_failures}")
        self._log("-" * 40)
        for _, row in summary_df.iterrows():
            self._log(f"  {row['layer']:20s} {row['metric']:5s} mean = {row['mean']:.4f}")
        self._log("=" * 60)

        if output_path is not None:
            output_path = Path(output_path)
            self._log(f"\nSaving report to: {output_path}")

            # Convert any numpy types for JSON serialization
            def convert_numpy(obj):
                if isinstance(obj, np.ndarray):
                    return obj.tolist()
                elif isinstance(obj, np.integer):
                    return int(obj)
                elif isinstance(obj, np.floating):
                    return None if np.isnan(obj) else float(obj)
                elif isinstance(obj, float) and np.isnan(obj):
                    return None
                elif isinstance(obj, dict):
                    return {k: convert_numpy(v) for k, v in obj.items()}
                elif isinstance(obj, list):
                    return [convert_numpy(i) for i in obj]
                return obj

            with open(output_path, 'w') as f:
                json.dump(convert_numpy(report), f, indent=2)

            csv_path = output_path.with_suffix('.csv')
            summary_df.to_csv(csv_path, index=False)
            self._log(f"Summary CSV saved to: {csv_path}")

        return summary_df, report

    def write_products(self, output_dir: Union[str, Path]) -> List[Path]:
        """Write the products of the last run as GeoTIFF files."""
        if self._result is None:
            self.compute()
        return self.products.write(output_dir)


# =============================================================================
# MODULE-LEVEL CONVENIENCE FUNCTION
# =============================================================================

def analyze(
    feature_path: str,
    mask_path: Optional[str] = None,
    config: Optional[LandscapeMetricsConfig] = None,
    config_path: Optional[str] = None,
    output_dir: Optional[str] = None,
    report_path: Optional[str] = None
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Convenience function to run the full landscape metrics pipeline.

    Args:
        feature_path: Raster with one feature layer per band.
        mask_path: Raster or GeoJSON processing mask (optional).
        config: Engine parameters (optional).
        config_path: JSON file with engine parameters, used if config is None.
        output_dir: Root directory for GeoTIFF products (optional).
        report_path: Path to save the JSON report (optional).

    Returns:
        Tuple[pd.DataFrame, Dict[str, Any]]: Summary DataFrame and full report dict.

    Example:
        >>> from landscape_metrics import analyze
        >>> df, report = analyze(
        ...     feature_path="X0058_Y0045/TREECOVER.tif",
        ...     config_path="lsm.json",
        ...     output_dir="higher-level"
        ... )
    """
    if config is None and config_path is not None:
        config = LandscapeMetricsConfig.from_json(config_path)

    analyzer = LandscapeMetricsAnalyzer.from_paths(feature_path, mask_path, config)
    summary_df, report = analyzer.generate_report(output_path=report_path)

    if output_dir is not None:
        report['products'] = [str(p) for p in analyzer.write_products(output_dir)]

    return summary_df, report
