# -*- coding: utf-8 -*-
"""
Semi-Global Matcher - OpenCV StereoSGBM behind the matcher contract.

Wraps ``cv2.StereoSGBM`` for rectified pairs. The search is horizontal
only: the vertical search range must contain zero and vertical disparity is
reported as 0. OpenCV measures disparity as ``x_left - x_right``, so the
matcher negates the configured ``dx`` range and the result. Output is
sub-pixel (OpenCV's 1/16 pixel steps).

SGM aggregates costs along whole scanlines, so a run using it processes the
image as a single tile with a single tile worker.

Dependencies
------------
opencv-python-headless

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
from typing import Optional

# Third-party
import numpy as np

try:
    import cv2
except ImportError:
    raise ImportError(
        "SemiGlobalMatcher requires opencv-python-headless. "
        "Install with: pip install opencv-python-headless>=4.5"
    )

# stereocorr internal
from stereocorr.correlation.base import Matcher
from stereocorr.correlation.filters import remove_small_blobs
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ValidationError

logger = logging.getLogger(__name__)

_DISPARITY_MULTIPLE = 16
_MAX_BLOCK_SIZE = 11


def _to_uint8(image: np.ndarray, valid: np.ndarray) -> np.ndarray:
    out = np.zeros(image.shape, dtype=np.float64)
    if np.any(valid):
        vmin, vmax = image[valid].min(), image[valid].max()
        if vmax > vmin:
            out[valid] = (image[valid] - vmin) / (vmax - vmin) * 255.0
    return out.astype(np.uint8)


class SemiGlobalMatcher(Matcher):
    """Semi-global block matching via OpenCV.

    Parameters
    ----------
    block_size : int
        Matching block size, odd. Clamped to 11.
    p1, p2 : int
        Smoothness penalties. 0 uses ``8*b^2`` and ``32*b^2``.
    xcorr_threshold : float
        Maximum left/right disparity difference, negative disables.
    blob_filter_area : int
        Remove valid regions smaller than this; 0 disables.
    timeout : float
        Soft time budget in seconds; 0 disables.
    seconds_per_op : float, optional
        Calibrated seconds per pixel-disparity evaluation.
    """

    produces_float = True

    def __init__(
        self,
        block_size: int = 5,
        p1: int = 0,
        p2: int = 0,
        xcorr_threshold: float = 2.0,
        blob_filter_area: int = 0,
        timeout: float = 0.0,
        seconds_per_op: Optional[float] = None,
    ) -> None:
        super().__init__(timeout=timeout, seconds_per_op=seconds_per_op)
        if block_size < 1 or block_size % 2 == 0:
            raise ValidationError(f"block_size must be odd and positive, got {block_size}")
        self.block_size = min(int(block_size), _MAX_BLOCK_SIZE)
        b2 = self.block_size ** 2
        self.p1 = p1 or 8 * b2
        self.p2 = p2 or 32 * b2
        if self.p2 <= self.p1:
            raise ValidationError(f"p2 ({self.p2}) must exceed p1 ({self.p1})")
        self.xcorr_threshold = xcorr_threshold
        self.blob_filter_area = blob_filter_area

    def _match(self, left, right, left_valid, right_valid, search_range):
        min_x, min_y, max_x, max_y = search_range.as_int()
        if min_y > 0 or max_y < 0:
            raise ValidationError(
                f"SGM searches horizontally only; vertical range "
                f"[{min_y}, {max_y}] must contain 0"
            )
        if min_y != max_y:
            logger.warning("SGM ignores the vertical search range [%d, %d]", min_y, max_y)

        rows = max(left.shape[0], right.shape[0])
        cols = max(left.shape[1], right.shape[1])

        def pad(a):
            out = np.zeros((rows, cols), dtype=a.dtype)
            out[:a.shape[0], :a.shape[1]] = a
            return out

        left_u8 = pad(_to_uint8(left, left_valid))
        right_u8 = pad(_to_uint8(right, right_valid))
        left_ok = pad(left_valid)
        right_ok = pad(right_valid)

        # OpenCV disparity d pairs left x with right x - d, so d = -dx.
        min_disp = -max_x
        num_disp = max_x - min_x + 1
        num_disp = ((num_disp + _DISPARITY_MULTIPLE - 1) // _DISPARITY_MULTIPLE) * _DISPARITY_MULTIPLE

        stereo = cv2.StereoSGBM_create(
            minDisparity=min_disp,
            numDisparities=num_disp,
            blockSize=self.block_size,
            P1=self.p1,
            P2=self.p2,
            disp12MaxDiff=int(np.ceil(self.xcorr_threshold)) if self.xcorr_threshold >= 0 else -1,
            uniquenessRatio=10,
            speckleWindowSize=0,
            speckleRange=0,
            mode=cv2.STEREO_SGBM_MODE_SGBM_3WAY,
        )
        raw = stereo.compute(left_u8, right_u8).astype(np.float32) / 16.0

        d = -raw
        valid = (raw >= min_disp) & (d >= min_x) & (d <= max_x) & left_ok
        xs = np.arange(cols)[None, :] + np.rint(np.where(valid, d, 0)).astype(np.intp)
        inside = (xs >= 0) & (xs < cols)
        ys = np.broadcast_to(np.arange(rows)[:, None], xs.shape)
        valid &= inside & right_ok[ys, np.clip(xs, 0, cols - 1)]

        lr, lc = left.shape
        field = DisparityField.from_components(
            d[:lr, :lc], np.zeros((lr, lc), dtype=np.float32), valid[:lr, :lc])
        if self.blob_filter_area > 0:
            field = remove_small_blobs(field, self.blob_filter_area)
        return field
