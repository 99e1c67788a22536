"""
Output products: allocation, naming and GeoTIFF export.

Every enabled metric gets one int16 stack with one band per feature layer,
pre-filled with nodata. The engine writes into 2-D views of these stacks;
disabled metrics are never allocated.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import rasterio

from .layers import Tile
from .metrics import Metric


MetricRasters = Dict[Metric, np.ndarray]


class ProductBinding:
    """
    Owns the output stacks of one engine run.

    Attributes:
        metrics (List[Metric]): Enabled metrics, in product order.
        layer_names (List[str]): Feature layer names (one band each).
        tile (Tile): Output grid.
        nodata (int): Nodata sentinel of every product.
        basename (str): Prefix of the product file names.
        rasters (MetricRasters): Stacks of shape (n_layers, height, width);
            empty until ``allocate()`` succeeded.
    """

    def __init__(
        self,
        metrics: Iterable[Metric],
        layer_names: Sequence[str],
        tile: Tile,
        nodata: int,
        basename: str = "LSM"
    ):
        metrics = set(metrics)
        self.metrics = [m for m in Metric if m in metrics]
        self.layer_names = list(layer_names)
        self.tile = tile
        self.nodata = int(nodata)
        self.basename = basename
        self.rasters: MetricRasters = {}

    @property
    def n_layers(self) -> int:
        return len(self.layer_names)

    def allocate(self) -> int:
        """
        Allocate one nodata-filled stack per enabled metric.

        Either every stack is allocated or none is.

        Returns:
            int: Number of products that failed to allocate (0 on success).
        """
        shape = (self.n_layers,) + self.tile.shape
        errors = 0

        for metric in self.metrics:
            try:
                self.rasters[metric] = np.full(shape, self.nodata, dtype=np.int16)
            except MemoryError:
                print(f"[ERROR] Could not allocate {metric.value} product {shape}")
                errors += 1

        if errors > 0:
            print(f"[ERROR] {errors} product allocation errors")
            self.release()
        return errors

    def release(self) -> None:
        self.rasters = {}

    def layer_outputs(self, layer: int) -> MetricRasters:
        """2-D views of every product for one feature layer."""
        return {metric: stack[layer] for metric, stack in self.rasters.items()}

    def reset_layer(self, layer: int) -> None:
        """Set every product of one feature layer back to nodata."""
        for stack in self.rasters.values():
            stack[layer].fill(self.nodata)

    # =========================================================================
    # NAMING
    # =========================================================================

    def product_name(self, metric: Metric) -> str:
        """File name stem, e.g. 'LSM_HL_LSM_MPA'."""
        return f"{self.basename}_HL_LSM_{metric.value}"

    def product_dir(self, root: Union[str, Path]) -> Path:
        """Tile directory below ``root``, e.g. 'root/X0012_Y0034'."""
        return Path(root) / self.tile.dirname

    def product_path(self, root: Union[str, Path], metric: Metric) -> Path:
        return self.product_dir(root) / f"{self.product_name(metric)}.tif"

    # =========================================================================
    # EXPORT
    # =========================================================================

    def write(
        self,
        root: Union[str, Path],
        metrics: Optional[Iterable[Metric]] = None
    ) -> List[Path]:
        """
        Write products as GeoTIFF, one file per metric, one band per layer.

        Args:
            root: Output root; files go to ``root/X{tx:04d}_Y{ty:04d}/``.
            metrics: Subset of products to write (default: all allocated).

        Returns:
            List[Path]: Written files.

        Raises:
            ValueError: If products were not allocated.
        """
        if not self.rasters:
            raise ValueError("No products allocated. Run the engine first.")

        selected = self.metrics if metrics is None else [m for m in self.metrics if m in set(metrics)]
        out_dir = self.product_dir(root)
        out_dir.mkdir(parents=True, exist_ok=True)

        profile = {
            'driver': 'GTiff',
            'height': self.tile.height,
            'width': self.tile.width,
            'count': self.n_layers,
            'dtype': 'int16',
            'nodata': self.nodata,
            'compress': 'lzw',
        }
        if self.tile.transform is not None:
            profile['transform'] = self.tile.transform
        if self.tile.crs is not None:
            profile['crs'] = self.tile.crs

        paths = []
        for metric in selected:
            path = self.product_path(root, metric)
            with rasterio.open(path, 'w', **profile) as dst:
                dst.write(self.rasters[metric])
                for b, name in enumerate(self.layer_names, start=1):
                    dst.set_band_description(b, name)
                dst.update_tags(product=metric.value, name="Landscape Metrics")
            print(f"[INFO] Wrote {path}")
            paths.append(path)

        return paths
