"""
Patch delineation: connected-component labeling of an active mask.

The window engine only relies on the labeling contract (labels 1..K,
0 = background, small components already removed), not on how the labels
are produced. ``scipy.ndimage.label`` does the actual work.
"""

from typing import NamedTuple

import numpy as np
from scipy import ndimage

from .errors import ConfigurationError


CONNECTIVITIES = (4, 8)


class PatchLabels(NamedTuple):
    """
    Result of patch labeling.

    Attributes:
        labels: int32 raster, 0 = background, 1..count = patch id.
        sizes: Pixel count per label, index 0 unused (always 0).
        count: Number of patches K.
    """
    labels: np.ndarray
    sizes: np.ndarray
    count: int


def label_patches(
    active: np.ndarray,
    min_size: int = 3,
    connectivity: int = 8
) -> PatchLabels:
    """
    Label connected groups of active cells and drop small ones.

    Components with fewer than ``min_size`` pixels revert to background and
    the surviving components are renumbered consecutively from 1.

    Args:
        active: Boolean active mask.
        min_size: Minimum patch size in pixels (default: 3).
        connectivity: 4 (rook) or 8 (queen) neighborhood (default: 8).

    Returns:
        PatchLabels: Label raster, per-label sizes and patch count.

    Raises:
        ConfigurationError: If connectivity is not 4 or 8.

    Example:
        >>> mask = np.array([[1, 1, 0, 1]], dtype=bool)
        >>> label_patches(mask, min_size=2).count
        1
    """
    if connectivity not in CONNECTIVITIES:
        raise ConfigurationError(
            f"connectivity must be 4 or 8, got {connectivity}", field="connectivity"
        )

    structure = ndimage.generate_binary_structure(2, 1 if connectivity == 4 else 2)
    raw, nobj = ndimage.label(np.asarray(active, dtype=bool), structure=structure)

    if nobj == 0:
        return PatchLabels(np.zeros(raw.shape, dtype=np.int32), np.zeros(1, dtype=np.int64), 0)

    sizes = np.bincount(raw.ravel(), minlength=nobj + 1)

    # Remove small components and close the gaps in the numbering
    keep = sizes >= max(int(min_size), 1)
    keep[0] = False
    remap = np.zeros(nobj + 1, dtype=np.int32)
    remap[keep] = np.arange(1, np.count_nonzero(keep) + 1, dtype=np.int32)

    labels = remap[raw]
    kept_sizes = np.concatenate(([0], sizes[keep])).astype(np.int64)

    return PatchLabels(labels, kept_sizes, int(np.count_nonzero(keep)))
