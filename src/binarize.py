"""
Feature binarization: turn one feature layer into an "active" mask.

A cell is active when it is processable (inside the processing mask and not
excluded by the validity policy) and its value satisfies the layer's
threshold predicate.
"""

from enum import Enum
from typing import Optional, Union

import numpy as np

from .errors import RasterShapeMismatch


class ThresholdOperator(Enum):
    """Threshold predicate applied to a feature layer."""
    EQ = 'EQ'
    GTE = 'GTE'
    LTE = 'LTE'

    @classmethod
    def parse(cls, value: Union[str, 'ThresholdOperator']) -> Optional['ThresholdOperator']:
        """
        Parse an operator from its name.

        Accepts the enum itself, 'EQ'/'GTE'/'LTE' (any case) and the
        symbolic forms '==', '>=', '<='. Unknown names return None so that the
        caller can treat them as "never active".
        """
        if isinstance(value, cls):
            return value

        aliases = {'==': 'EQ', '=': 'EQ', '>=': 'GTE', 'GT': 'GTE', '<=': 'LTE', 'LT': 'LTE'}
        name = str(value).strip().upper()
        name = aliases.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


def valid_cells(
    validity: np.ndarray,
    processing_mask: Optional[np.ndarray] = None,
    exclude_invalid: bool = True
) -> np.ndarray:
    """
    Cells that take part in the computation at all.

    Args:
        validity: Boolean validity mask of the feature layer (True = valid).
        processing_mask: Optional boolean processing mask (True = process).
        exclude_invalid: If True, cells flagged invalid are excluded.

    Returns:
        np.ndarray: Boolean raster, True where the cell is processable.

    Raises:
        RasterShapeMismatch: If the processing mask does not match the layer.
    """
    validity = np.asarray(validity, dtype=bool)
    usable = validity.copy() if exclude_invalid else np.ones(validity.shape, dtype=bool)

    if processing_mask is not None:
        processing_mask = np.asarray(processing_mask, dtype=bool)
        if processing_mask.shape != validity.shape:
            raise RasterShapeMismatch("processing_mask", validity.shape, processing_mask.shape)
        usable &= processing_mask

    return usable


def binarize_layer(
    values: np.ndarray,
    usable: np.ndarray,
    operator: Union[str, ThresholdOperator, None],
    threshold: float
) -> np.ndarray:
    """
    Evaluate the threshold predicate on every usable cell.

    Args:
        values: Feature values of the layer.
        usable: Output of ``valid_cells`` for the same layer.
        operator: EQ (==), GTE (>=) or LTE (<=). Anything else yields an
                  all-inactive mask.
        threshold: Threshold value.

    Returns:
        np.ndarray: Boolean active mask.

    Example:
        >>> values = np.array([[0, 1], [2, 3]])
        >>> binarize_layer(values, np.ones((2, 2), bool), 'GTE', 2)
        array([[False, False],
               [ True,  True]])
    """
    values = np.asarray(values)
    op = ThresholdOperator.parse(operator) if operator is not None else None

    if op is ThresholdOperator.EQ:
        active = values == threshold
    elif op is ThresholdOperator.GTE:
        active = values >= threshold
    elif op is ThresholdOperator.LTE:
        active = values <= threshold
    else:
        return np.zeros(values.shape, dtype=bool)

    return active & usable
