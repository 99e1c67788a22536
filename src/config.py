"""
Configuration of the landscape metrics engine.

All parameters live in one dataclass so that a run can be reproduced from a
JSON file. ``validate()`` is called before anything is allocated.

Example JSON:
    {
        "radius": 2,
        "kernel_shape": "circle",
        "operators": ["GTE"],
        "thresholds": [1],
        "metrics": ["MPA", "EDD", "NBR"]
    }
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from .aggregator import ENGINES
from .binarize import ThresholdOperator
from .errors import ConfigurationError
from .kernel import KERNEL_SHAPES
from .labeling import CONNECTIVITIES
from .metrics import INT16_MAX, INT16_MIN, Metric


@dataclass
class LandscapeMetricsConfig:
    """All engine parameters stored in one place for reproducibility."""
    # Window
    radius: int = 1
    kernel_shape: str = "square"         # square | circle

    # Binarization, one entry per feature layer (a single entry is broadcast)
    operators: List[str] = field(default_factory=lambda: ["GTE"])
    thresholds: List[float] = field(default_factory=lambda: [1.0])
    exclude_invalid: bool = True         # invalid cells never take part

    # Patches
    min_patch_size: int = 3              # in pixels
    connectivity: int = 8                # 4 | 8

    # Scan
    all_pixels: bool = False             # also scan around inactive cells
    metrics: Set[Metric] = field(default_factory=lambda: set(Metric))

    # Output
    nodata: int = -9999
    basename: str = "LSM"

    # Execution
    n_workers: Optional[int] = None      # None = os.cpu_count()
    block_rows: int = 8
    engine: str = "numba"                # numba | python (reference scan)

    def __post_init__(self):
        self.metrics = Metric.parse(self.metrics)
        if not isinstance(self.operators, (list, tuple)):
            self.operators = [self.operators]
        if not isinstance(self.thresholds, (list, tuple)):
            self.thresholds = [self.thresholds]
        self.operators = list(self.operators)
        self.thresholds = [float(t) for t in self.thresholds]

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, n_layers: Optional[int] = None) -> "LandscapeMetricsConfig":
        """
        Check the parameter set.

        Args:
            n_layers: Number of feature layers the configuration will be used
                      with; checks the per-layer operator/threshold lists.

        Returns:
            LandscapeMetricsConfig: self, for chaining.

        Raises:
            ConfigurationError: On the first invalid parameter.
        """
        if self.radius < 0:
            raise ConfigurationError(f"radius must be >= 0, got {self.radius}", field="radius")
        if self.kernel_shape not in KERNEL_SHAPES:
            raise ConfigurationError(
                f"Invalid kernel shape '{self.kernel_shape}'. Use 'square' or 'circle'.",
                field="kernel_shape"
            )
        if self.connectivity not in CONNECTIVITIES:
            raise ConfigurationError(
                f"connectivity must be 4 or 8, got {self.connectivity}", field="connectivity"
            )
        if self.min_patch_size < 1:
            raise ConfigurationError(
                f"min_patch_size must be >= 1, got {self.min_patch_size}", field="min_patch_size"
            )
        if not self.metrics:
            raise ConfigurationError("No metric enabled", field="metrics")
        if not INT16_MIN <= self.nodata < 0:
            raise ConfigurationError(
                f"nodata must be a negative int16 value, got {self.nodata} "
                f"(0..{INT16_MAX} is reserved for metric values)",
                field="nodata"
            )
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {self.n_workers}", field="n_workers")
        if self.block_rows < 1:
            raise ConfigurationError(f"block_rows must be >= 1, got {self.block_rows}", field="block_rows")
        if self.engine not in ENGINES:
            raise ConfigurationError(
                f"Invalid engine '{self.engine}'. Use 'numba' or 'python'.", field="engine"
            )
        if not self.operators or len(self.operators) != len(self.thresholds):
            raise ConfigurationError(
                f"Got {len(self.operators)} operators but {len(self.thresholds)} thresholds",
                field="thresholds"
            )
        if n_layers is not None and len(self.operators) not in (1, n_layers):
            raise ConfigurationError(
                f"Got {len(self.operators)} thresholds for {n_layers} feature layers",
                field="thresholds"
            )
        return self

    def layer_query(self, index: int):
        """
        Threshold predicate of one layer.

        Returns:
            Tuple[Optional[ThresholdOperator], float]: Operator (None if the
            name is unknown, which makes the layer all-inactive) and threshold.
        """
        i = 0 if len(self.operators) == 1 else index
        return ThresholdOperator.parse(self.operators[i]), self.thresholds[i]

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['metrics'] = [m.value for m in Metric if m in self.metrics]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LandscapeMetricsConfig":
        """
        Build a configuration from a plain dictionary.

        Raises:
            ConfigurationError: If the dictionary holds unknown keys.
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}", field=unknown[0])
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "LandscapeMetricsConfig":
        """
        Load a configuration from a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"config file not found: {path}")

        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))
