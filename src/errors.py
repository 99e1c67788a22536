"""
Error types for the landscape metrics engine.

Configuration problems are raised before any raster is allocated so that a
bad parameter set never produces partial products. Degenerate numeric cases
(empty windows, single-pixel patches) are expected data conditions and are
handled with fallback values instead of exceptions.

Example:
    >>> try:
    ...     config = LandscapeMetricsConfig(radius=-1)
    ...     config.validate()
    ... except ConfigurationError as e:
    ...     print(f"Invalid '{e.field}': {e}")
"""

from typing import Optional


class LandscapeMetricsError(Exception):
    """Base class for all landscape metrics errors."""

    pass


class ConfigurationError(LandscapeMetricsError, ValueError):
    """
    Raised when parameters or inputs are inconsistent.

    Attributes:
        field: Name of the offending parameter (e.g. "radius", "metrics").
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RasterShapeMismatch(ConfigurationError):
    """Raised when a raster does not match the tile dimensions."""

    def __init__(self, field: str, expected_shape: tuple, actual_shape: tuple):
        self.expected_shape = tuple(expected_shape)
        self.actual_shape = tuple(actual_shape)
        super().__init__(
            f"Raster shape mismatch for '{field}':\n"
            f"  Expected: {self.expected_shape}\n"
            f"  Got: {self.actual_shape}",
            field=field,
        )


class LayerProcessingError(LandscapeMetricsError):
    """
    Raised when one feature layer cannot be processed.

    The engine catches it, leaves the layer at nodata and continues with the
    next layer.

    Attributes:
        layer: Name of the feature layer.
        stage: Pipeline stage that failed ('label' or 'scan').
        reason: Short description of the cause.
    """

    def __init__(self, layer: str, stage: str, reason: str):
        self.layer = layer
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage} failed for layer '{layer}': {reason}")
