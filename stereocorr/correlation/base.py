# -*- coding: utf-8 -*-
"""
Matcher Base - Contract of the correlation engine.

A ``Matcher`` turns two rasters, their validity masks and an integer search
range into a ``DisparityField`` sized like the left raster. The right raster
shares the left raster's origin but may be larger, so a left pixel ``(x, y)``
is compared with right pixels ``(x + dx, y + dy)`` for every ``(dx, dy)`` in
the range. Comparisons that fall outside the right raster are invalid.

Each matcher has a soft time budget. When ``timeout`` and ``seconds_per_op``
are both set and the estimated cost of a request exceeds the budget, the
request is logged and answered with an all-invalid field. This trades
quality for time and is not an error.

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-10-19

Modified
--------
2026-10-19
"""

# Standard library
import logging
from abc import ABC, abstractmethod
from typing import Optional

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import SearchRange
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _default_mask(image: np.ndarray, mask: Optional[np.ndarray]) -> np.ndarray:
    valid = np.isfinite(image)
    if mask is not None:
        if mask.shape != image.shape:
            raise ValidationError(
                f"mask shape {mask.shape} does not match raster shape {image.shape}"
            )
        valid &= mask.astype(bool)
    return valid


class Matcher(ABC):
    """Abstract correlation engine.

    Parameters
    ----------
    timeout : float
        Soft time budget per request in seconds. 0 disables it.
    seconds_per_op : float, optional
        Calibrated cost of one pixel-disparity evaluation.

    Attributes
    ----------
    produces_float : bool
        Whether the output disparities are sub-pixel.
    """

    produces_float: bool = False

    def __init__(self, timeout: float = 0.0, seconds_per_op: Optional[float] = None) -> None:
        self.timeout = timeout
        self.seconds_per_op = seconds_per_op

    def estimate_ops(self, shape, search_range: SearchRange) -> float:
        """Pixel-disparity evaluations needed for a request."""
        min_x, min_y, max_x, max_y = search_range.as_int()
        n_disp = (max_x - min_x + 1) * (max_y - min_y + 1)
        return float(shape[0] * shape[1] * n_disp)

    def exceeds_budget(self, shape, search_range: SearchRange) -> bool:
        if self.timeout <= 0 or not self.seconds_per_op:
            return False
        estimate = self.estimate_ops(shape, search_range) * self.seconds_per_op
        return estimate > self.timeout

    def match(
        self,
        left: np.ndarray,
        right: np.ndarray,
        left_mask: Optional[np.ndarray],
        right_mask: Optional[np.ndarray],
        search_range: SearchRange,
    ) -> DisparityField:
        """Correlate ``left`` against ``right`` over ``search_range``.

        Parameters
        ----------
        left : np.ndarray
            Left raster. Shape (rows, cols).
        right : np.ndarray
            Right raster sharing the left origin. Shape (rows', cols').
        left_mask, right_mask : np.ndarray or None
            Boolean validity masks. None means every finite pixel is valid.
        search_range : SearchRange
            Inclusive disparity range. Non-integer bounds are grown.

        Returns
        -------
        DisparityField
            Shape (rows, cols).
        """
        left = np.asarray(left, dtype=np.float64)
        right = np.asarray(right, dtype=np.float64)
        if left.ndim != 2 or right.ndim != 2:
            raise ValidationError(
                f"Expected 2D rasters, got {left.shape} and {right.shape}"
            )
        if search_range is None or search_range.is_empty():
            raise ValidationError("Matcher needs a non-empty search range")
        search_range = search_range.grow_to_int()
        left_valid = _default_mask(left, left_mask)
        right_valid = _default_mask(right, right_mask)

        if self.exceeds_budget(left.shape, search_range):
            logger.warning(
                "Correlation of a %dx%d raster over %s exceeds the %.1f s "
                "time budget; returning no matches",
                left.shape[1], left.shape[0], search_range, self.timeout,
            )
            return DisparityField.invalid(left.shape)
        if not np.any(left_valid) or not np.any(right_valid):
            return DisparityField.invalid(left.shape)

        return self._match(left, right, left_valid, right_valid, search_range)

    @abstractmethod
    def _match(
        self,
        left: np.ndarray,
        right: np.ndarray,
        left_valid: np.ndarray,
        right_valid: np.ndarray,
        search_range: SearchRange,
    ) -> DisparityField:
        """Algorithm-specific correlation on validated inputs."""
        ...
