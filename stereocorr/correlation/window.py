# -*- coding: utf-8 -*-
"""
Window Matcher - Exhaustive block correlation with box aggregation.

For every integer offset in the 2D search range, the matcher compares the
prefiltered left raster with the shifted right raster, averages the
per-pixel cost over the correlation kernel with
``scipy.ndimage.uniform_filter``, and keeps the best offset per pixel
(winner takes all). A pixel is only matched where its whole kernel is valid
in both rasters, which invalidates a half-kernel border.

Optional post-steps are a left/right consistency check, where the right
raster is matched back onto the left and pixels whose round trip misses by
more than ``xcorr_threshold`` are dropped, and small-blob removal.

Dependencies
------------
scipy

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
from typing import Optional, Tuple

# Third-party
import numpy as np
from scipy.ndimage import uniform_filter

# stereocorr internal
from stereocorr.bbox import SearchRange
from stereocorr.correlation.base import Matcher
from stereocorr.correlation.cost import (
    census_transform,
    pixel_cost,
    ternary_census_transform,
)
from stereocorr.correlation.filters import remove_small_blobs
from stereocorr.correlation.prefilter import prefilter_image
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ValidationError
from stereocorr.vocabulary import CostFunction, PrefilterMode

logger = logging.getLogger(__name__)

_FULL_SUPPORT = 1.0 - 1e-6
_NCC_EPS = 1e-12


def _shifted(array: np.ndarray, dx: int, dy: int, shape: Tuple[int, int], fill) -> np.ndarray:
    """``out[r, c] = array[r + dy, c + dx]`` over ``shape``, ``fill`` outside."""
    rows, cols = shape
    out = np.full(shape, fill, dtype=array.dtype)
    src_r0, src_c0 = dy, dx
    r0 = max(0, -src_r0)
    c0 = max(0, -src_c0)
    r1 = min(rows, array.shape[0] - src_r0)
    c1 = min(cols, array.shape[1] - src_c0)
    if r1 > r0 and c1 > c0:
        out[r0:r1, c0:c1] = array[r0 + src_r0:r1 + src_r0, c0 + src_c0:c1 + src_c0]
    return out


class WindowMatcher(Matcher):
    """Block correlation over a 2D integer search range.

    Parameters
    ----------
    kernel_size : Tuple[int, int]
        Correlation window ``(width, height)``, odd.
    cost_function : CostFunction
        Matching cost. Default absolute difference.
    prefilter_mode : PrefilterMode
        Prefilter applied to both rasters. Default LoG.
    prefilter_sigma : float
        Prefilter sigma. Default 1.4.
    xcorr_threshold : float
        Left/right consistency tolerance in pixels; negative disables.
    blob_filter_area : int
        Remove valid regions smaller than this; 0 disables.
    ternary_census_threshold : float
        Dead band of the ternary census cost.
    timeout : float
        Soft time budget in seconds; 0 disables.
    seconds_per_op : float, optional
        Calibrated seconds per pixel-disparity evaluation.

    Examples
    --------
    >>> matcher = WindowMatcher(kernel_size=(7, 7))
    >>> field = matcher.match(left, right, None, None, SearchRange(0, 0, 16, 0))
    """

    produces_float = False

    def __init__(
        self,
        kernel_size: Tuple[int, int] = (21, 21),
        cost_function: CostFunction = CostFunction.ABSOLUTE_DIFFERENCE,
        prefilter_mode: PrefilterMode = PrefilterMode.LOG,
        prefilter_sigma: float = 1.4,
        xcorr_threshold: float = 2.0,
        blob_filter_area: int = 0,
        ternary_census_threshold: float = 0.0,
        timeout: float = 0.0,
        seconds_per_op: Optional[float] = None,
    ) -> None:
        super().__init__(timeout=timeout, seconds_per_op=seconds_per_op)
        kx, ky = kernel_size
        if kx < 1 or ky < 1 or kx % 2 == 0 or ky % 2 == 0:
            raise ValidationError(f"kernel_size must be odd and positive, got {kernel_size}")
        self.kernel_size = (int(kx), int(ky))
        self.cost_function = CostFunction(cost_function)
        self.prefilter_mode = PrefilterMode(prefilter_mode)
        self.prefilter_sigma = prefilter_sigma
        self.xcorr_threshold = xcorr_threshold
        self.blob_filter_area = blob_filter_area
        self.ternary_census_threshold = ternary_census_threshold

    def _aggregate(self, values: np.ndarray) -> np.ndarray:
        kx, ky = self.kernel_size
        return uniform_filter(values, size=(ky, kx), mode='nearest')

    def _support(self, valid: np.ndarray) -> np.ndarray:
        """Pixels whose whole kernel is valid."""
        kx, ky = self.kernel_size
        frac = uniform_filter(valid.astype(np.float64), size=(ky, kx), mode='constant', cval=0.0)
        return frac >= _FULL_SUPPORT

    def _encode(self, image: np.ndarray) -> np.ndarray:
        if self.cost_function is CostFunction.CENSUS_TRANSFORM:
            return census_transform(image)
        if self.cost_function is CostFunction.TERNARY_CENSUS_TRANSFORM:
            return ternary_census_transform(image, self.ternary_census_threshold)
        return image

    def _best_offsets(
        self,
        left: np.ndarray,
        right: np.ndarray,
        left_support: np.ndarray,
        right_support: np.ndarray,
        search_range: SearchRange,
    ) -> DisparityField:
        """Winner-takes-all search on prefiltered, encoded rasters."""
        shape = left.shape
        min_x, min_y, max_x, max_y = search_range.as_int()
        best_cost = np.full(shape, np.inf)
        best_dx = np.zeros(shape, dtype=np.float32)
        best_dy = np.zeros(shape, dtype=np.float32)

        ncc = self.cost_function is CostFunction.CROSS_CORRELATION
        if ncc:
            mean_l = self._aggregate(left)
            var_l = self._aggregate(left * left) - mean_l ** 2

        for dy in range(min_y, max_y + 1):
            for dx in range(min_x, max_x + 1):
                shifted = _shifted(right, dx, dy, shape, 0)
                support = left_support & _shifted(right_support, dx, dy, shape, False)
                if not np.any(support):
                    continue
                if ncc:
                    mean_r = self._aggregate(shifted)
                    var_r = self._aggregate(shifted * shifted) - mean_r ** 2
                    cov = self._aggregate(left * shifted) - mean_l * mean_r
                    denom = np.sqrt(np.maximum(var_l * var_r, 0.0)) + _NCC_EPS
                    cost = 1.0 - cov / denom
                else:
                    cost = self._aggregate(pixel_cost(left, shifted, self.cost_function))
                cost = np.where(support, cost, np.inf)
                better = cost < best_cost
                best_cost[better] = cost[better]
                best_dx[better] = dx
                best_dy[better] = dy

        valid = np.isfinite(best_cost)
        return DisparityField.from_components(best_dx, best_dy, valid)

    def _consistency_check(
        self,
        forward: DisparityField,
        backward: DisparityField,
    ) -> DisparityField:
        """Keep pixels whose right-to-left match returns within tolerance."""
        rows, cols = forward.shape
        ys, xs = np.mgrid[0:rows, 0:cols]
        tx = xs + np.rint(forward.dx).astype(np.intp)
        ty = ys + np.rint(forward.dy).astype(np.intp)
        b_rows, b_cols = backward.shape
        inside = (tx >= 0) & (tx < b_cols) & (ty >= 0) & (ty < b_rows)
        tx_c = np.clip(tx, 0, b_cols - 1)
        ty_c = np.clip(ty, 0, b_rows - 1)
        back_valid = backward.valid[ty_c, tx_c] & inside
        err_x = np.abs(forward.dx + backward.dx[ty_c, tx_c])
        err_y = np.abs(forward.dy + backward.dy[ty_c, tx_c])
        keep = (forward.valid & back_valid
                & (err_x <= self.xcorr_threshold)
                & (err_y <= self.xcorr_threshold))
        return DisparityField(forward.offsets.copy(), keep)

    def _match(self, left, right, left_valid, right_valid, search_range):
        left_f = self._encode(prefilter_image(
            left, self.prefilter_mode, self.prefilter_sigma, left_valid))
        right_f = self._encode(prefilter_image(
            right, self.prefilter_mode, self.prefilter_sigma, right_valid))
        left_support = self._support(left_valid)
        right_support = self._support(right_valid)

        result = self._best_offsets(left_f, right_f, left_support, right_support, search_range)

        if self.xcorr_threshold >= 0 and result.num_valid:
            reverse_range = SearchRange(-search_range.max_x, -search_range.max_y,
                                        -search_range.min_x, -search_range.min_y)
            backward = self._best_offsets(right_f, left_f, right_support, left_support,
                                          reverse_range)
            result = self._consistency_check(result, backward)

        if self.blob_filter_area > 0:
            result = remove_small_blobs(result, self.blob_filter_area)

        logger.debug(
            "Window correlation matched %d of %d pixels",
            result.num_valid, left.size,
        )
        return result
