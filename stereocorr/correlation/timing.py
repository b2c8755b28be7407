# -*- coding: utf-8 -*-
"""
Matcher Timing - Calibrate the per-operation cost of a matcher.

``calc_seconds_per_op`` runs a matcher once on a small central crop of the
input pair and divides the elapsed time by the number of pixel-disparity
evaluations. Multiplying that figure by the size of a later request gives
the estimate used by the matcher's soft time budget.

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
import time
from typing import Optional

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import BBox, SearchRange
from stereocorr.correlation.base import Matcher

logger = logging.getLogger(__name__)

_DEFAULT_RANGE = SearchRange(-5.0, 0.0, 5.0, 0.0)


def calc_seconds_per_op(
    matcher: Matcher,
    left: np.ndarray,
    right: np.ndarray,
    left_mask: Optional[np.ndarray] = None,
    right_mask: Optional[np.ndarray] = None,
    sample_size: int = 128,
    search_range: SearchRange = _DEFAULT_RANGE,
) -> float:
    """Seconds one pixel-disparity evaluation of ``matcher`` takes.

    Parameters
    ----------
    matcher : Matcher
        Matcher to calibrate. Its time budget is suspended during the run.
    left, right : np.ndarray
        Representative rasters. Shape (rows, cols).
    left_mask, right_mask : np.ndarray, optional
        Validity masks.
    sample_size : int
        Edge length of the central crop.
    search_range : SearchRange
        Range used for the calibration run.

    Returns
    -------
    float
        Seconds per operation (always positive).
    """
    rows, cols = left.shape
    h = min(rows, sample_size)
    w = min(cols, sample_size)
    r0 = (rows - h) // 2
    c0 = (cols - w) // 2
    box = BBox(c0, r0, c0 + w, r0 + h)
    rbox = box.crop(BBox(0, 0, right.shape[1], right.shape[0]))

    def crop(a, b):
        return None if a is None else a[b.slices]

    saved = matcher.seconds_per_op
    matcher.seconds_per_op = None
    try:
        start = time.perf_counter()
        matcher.match(crop(left, box), crop(right, rbox),
                      crop(left_mask, box), crop(right_mask, rbox), search_range)
        elapsed = time.perf_counter() - start
    finally:
        matcher.seconds_per_op = saved

    ops = matcher.estimate_ops((h, w), search_range)
    seconds = max(elapsed, 1e-9) / max(ops, 1.0)
    logger.info("Calibrated matcher cost: %.3g seconds per operation", seconds)
    return seconds
