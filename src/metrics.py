"""
Landscape metric definitions and per-pixel finalization.

Ten metrics can be derived from a window's accumulators. Scaled metrics are
stored as fixed-point int16 values (x 10000, truncated), which keeps four
decimal digits while fitting into a compact integer raster.

    MPA  Area-weighted mean patch area
    UCI  Unique class (patch) identifier of the center pixel; labels above
         32767 saturate, so very fragmented tiles share the top value
    FDI  Area-weighted mean fractal dimension index
    EDD  Edge density
    NBR  Number of patches
    EMS  Effective mesh size
    AVG  Mean of the feature values
    STD  Standard deviation of the feature values
    GEO  Geometric mean of the feature values
    MAX  Maximum feature value
"""

import math
from enum import Enum
from typing import Dict, Iterable, Set, Union

import numpy as np

from .errors import ConfigurationError


FIXED_POINT_SCALE = 10000
INT16_MIN = -32768
INT16_MAX = 32767


class Metric(Enum):
    """Output metrics, in product order."""
    MPA = 'MPA'
    UCI = 'UCI'
    FDI = 'FDI'
    EDD = 'EDD'
    NBR = 'NBR'
    EMS = 'EMS'
    AVG = 'AVG'
    STD = 'STD'
    GEO = 'GEO'
    MAX = 'MAX'

    @property
    def scaled(self) -> bool:
        """True for metrics stored as fixed-point (x 10000)."""
        return self in (Metric.MPA, Metric.FDI, Metric.EDD, Metric.EMS)

    @classmethod
    def parse(cls, names: Union[str, Iterable[Union[str, 'Metric']], None]) -> Set['Metric']:
        """
        Parse a metric selection.

        Args:
            names: None or 'all' for every metric, a single name, or an
                   iterable of names / Metric members (case-insensitive).

        Returns:
            Set[Metric]: Selected metrics.

        Raises:
            ConfigurationError: If a name is unknown.
        """
        if names is None:
            return set(cls)
        if isinstance(names, (str, cls)):
            names = [names]

        selected = set()
        for name in names:
            if isinstance(name, cls):
                selected.add(name)
                continue
            key = str(name).strip().upper()
            if key == 'ALL':
                selected.update(cls)
                continue
            try:
                selected.add(cls(key))
            except ValueError:
                valid = ', '.join(m.value for m in cls)
                raise ConfigurationError(
                    f"Unknown metric '{name}'. Use one of: {valid}", field="metrics"
                ) from None
        return selected


def encode_fixed_point(value: float, scale: int = FIXED_POINT_SCALE) -> int:
    """
    Encode a metric value as a truncated, saturated int16.

    Example:
        >>> encode_fixed_point(0.12345)
        1234
    """
    scaled = value * scale
    if scaled >= INT16_MAX:
        return INT16_MAX
    if scaled <= INT16_MIN:
        return INT16_MIN
    return int(scaled)


def decode_fixed_point(
    value: Union[int, np.ndarray],
    scale: int = FIXED_POINT_SCALE
) -> Union[float, np.ndarray]:
    """Inverse of ``encode_fixed_point`` (up to the truncated digits)."""
    return value / scale


class MetricFinalizer:
    """
    Turns a window's accumulators into the enabled metric values.

    Only metrics in ``metrics`` are computed; the others are never touched.

    Attributes:
        metrics (Set[Metric]): Enabled metrics.
        window_size (int): Number of cells in the window shape.
        nodata (int): Output nodata sentinel.
    """

    def __init__(self, metrics: Iterable[Metric], window_size: int, nodata: int):
        self.metrics = set(metrics)
        self.window_size = int(window_size)
        self.sqrt_window = math.sqrt(self.window_size)
        self.nodata = int(nodata)

        # product order, so that output is deterministic
        self.order = [m for m in Metric if m in self.metrics]

    def _store(self, value: float, scale: int = 1) -> int:
        """Encode and keep the result off the nodata sentinel."""
        encoded = encode_fixed_point(value, scale)
        if encoded == self.nodata:
            encoded += 1 if encoded < 0 else -1
        return encoded

    # =========================================================================
    # PATCH METRICS
    # =========================================================================

    def patch_area(self, acc, label: int) -> float:
        """Area of one patch, in fractions of the window."""
        return acc.patch_cells[label] / self.window_size

    def patch_perimeter(self, acc, label: int) -> float:
        """Perimeter of one patch, in fractions of the window's side length."""
        return acc.patch_edges[label] / self.sqrt_window

    def class_area(self, acc) -> float:
        """Active area of the window, in fractions of the window."""
        return acc.class_cells / self.window_size

    def total_edge_length(self, acc) -> float:
        return acc.edge_count / self.sqrt_window

    def mean_patch_area(self, acc) -> float:
        """
        Area-weighted mean patch area, in fractions of the window.

        Each patch is weighted by its share of the total class area;
        returns 0 when no patch carries weight.
        """
        if acc.class_cells <= 0:
            return 0.0

        sum_area = sum_share = 0.0
        for label in acc.touched:
            cells = acc.patch_cells[label]
            share = cells / acc.class_cells
            sum_area += share * cells
            sum_share += share

        if sum_share <= 0:
            return 0.0
        return sum_area / sum_share / self.window_size

    def fractal_dimension(self, acc) -> float:
        """
        Area-weighted mean fractal dimension index.

        Per patch: FD = 2 ln(0.25 P) / ln(A), with A the patch's pixel count
        and P its pixel-unit perimeter inside the window. Single-pixel patches
        and patches without any edge in the window are skipped (ln(1) = 0,
        ln(0) undefined). Returns 0 when no patch contributed.
        """
        sum_fd = sum_weight = 0.0
        for label in acc.touched:
            unit_area = int(acc.patch_cells[label])
            unit_perim = int(acc.patch_edges[label])

            if unit_area == 1 or unit_perim <= 0:
                continue

            weight = unit_area / self.window_size
            sum_fd += weight * 2.0 * math.log(0.25 * unit_perim) / math.log(unit_area)
            sum_weight += weight

        return sum_fd / sum_weight if sum_weight > 0 else 0.0

    def edge_density(self, acc) -> float:
        """Edge length per window side, i.e. edges / window_size."""
        return acc.edge_count / self.window_size

    def effective_mesh_size(self, acc) -> float:
        area = self.class_area(acc)
        return area * area

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    def finalize(self, acc, center_label: int) -> Dict[Metric, int]:
        """
        Compute the enabled metrics of one pixel.

        Args:
            acc: WindowAccumulators after the window scan.
            center_label: Patch label of the center pixel.

        Returns:
            Dict[Metric, int]: Encoded value per enabled metric.
        """
        out: Dict[Metric, int] = {}
        stats = acc.stats

        for metric in self.order:
            if metric is Metric.MPA:
                out[metric] = self._store(self.mean_patch_area(acc), FIXED_POINT_SCALE)
            elif metric is Metric.UCI:
                out[metric] = self._store(center_label)
            elif metric is Metric.FDI:
                out[metric] = self._store(self.fractal_dimension(acc), FIXED_POINT_SCALE)
            elif metric is Metric.EDD:
                out[metric] = self._store(self.edge_density(acc), FIXED_POINT_SCALE)
            elif metric is Metric.NBR:
                out[metric] = self._store(len(acc.touched))
            elif metric is Metric.EMS:
                out[metric] = self._store(self.effective_mesh_size(acc), FIXED_POINT_SCALE)
            elif metric is Metric.AVG:
                out[metric] = self._store(stats.mean) if stats.count else self.nodata
            elif metric is Metric.STD:
                out[metric] = self._store(stats.std)
            elif metric is Metric.GEO:
                out[metric] = self._geometric_mean(acc)
            elif metric is Metric.MAX:
                out[metric] = self.nodata if acc.max_value is None else self._store(acc.max_value)

        return out

    def _geometric_mean(self, acc) -> int:
        # undefined without positive samples
        if acc.log_count == 0:
            return self.nodata
        return self._store(math.exp(acc.log_sum / acc.log_count))
