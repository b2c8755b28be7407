# -*- coding: utf-8 -*-
"""
Disparity Filters - Outlier rejection and small-blob removal.

Three post-filters invalidate suspicious disparities without changing the
values of the pixels they keep:

* ``rm_outliers_using_thresh`` invalidates pixels that too few neighbors
  agree with.
* ``rm_outliers_using_quantiles`` invalidates pixels far outside the
  interquantile range of the whole field.
* ``remove_small_blobs`` invalidates connected valid regions smaller than a
  minimum area.

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

# Third-party
import numpy as np
from scipy import ndimage

# stereocorr internal
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _shift(array: np.ndarray, dy: int, dx: int, fill) -> np.ndarray:
    """``out[r, c] = array[r + dy, c + dx]``, ``fill`` outside."""
    out = np.full_like(array, fill)
    rows, cols = array.shape[:2]
    src_r = slice(max(0, dy), rows + min(0, dy))
    dst_r = slice(max(0, -dy), rows + min(0, -dy))
    src_c = slice(max(0, dx), cols + min(0, dx))
    dst_c = slice(max(0, -dx), cols + min(0, -dx))
    out[dst_r, dst_c] = array[src_r, src_c]
    return out


def rm_outliers_using_thresh(
    field: DisparityField,
    half_kernel_x: int,
    half_kernel_y: int,
    threshold: float,
    min_matches_fraction: float,
) -> DisparityField:
    """Invalidate pixels that disagree with their valid neighbors.

    A neighbor agrees when both its ``|dx|`` and ``|dy|`` differences from
    the center are below ``threshold``. A valid pixel survives when the
    agreeing fraction of its valid neighbors reaches
    ``min_matches_fraction``. Pixels with no valid neighbor are dropped.

    Parameters
    ----------
    field : DisparityField
        Input disparity.
    half_kernel_x, half_kernel_y : int
        Neighborhood half sizes.
    threshold : float
        Agreement tolerance in pixels.
    min_matches_fraction : float
        Required agreeing fraction in ``[0, 1]``.

    Returns
    -------
    DisparityField
    """
    if not 0.0 <= min_matches_fraction <= 1.0:
        raise ValidationError(
            f"min_matches_fraction must be in [0, 1], got {min_matches_fraction}"
        )
    dx, dy, valid = field.dx, field.dy, field.valid
    total = np.zeros(field.shape, dtype=np.int32)
    matched = np.zeros(field.shape, dtype=np.int32)
    for ky in range(-half_kernel_y, half_kernel_y + 1):
        for kx in range(-half_kernel_x, half_kernel_x + 1):
            if kx == 0 and ky == 0:
                continue
            n_valid = _shift(valid, ky, kx, False)
            n_dx = _shift(dx, ky, kx, 0)
            n_dy = _shift(dy, ky, kx, 0)
            agree = (n_valid
                     & (np.abs(n_dx - dx) < threshold)
                     & (np.abs(n_dy - dy) < threshold))
            total += n_valid
            matched += agree

    with np.errstate(divide='ignore', invalid='ignore'):
        fraction = np.where(total > 0, matched / np.maximum(total, 1), 0.0)
    keep = valid & (total > 0) & (fraction >= min_matches_fraction)
    logger.debug(
        "Threshold outlier rejection removed %d of %d pixels",
        int(valid.sum() - keep.sum()), int(valid.sum()),
    )
    return DisparityField(field.offsets.copy(), keep)


def rm_outliers_using_quantiles(
    field: DisparityField,
    percentile: float,
    multiple: float,
) -> DisparityField:
    """Invalidate pixels far outside the interquantile range.

    For each component, with ``lo`` and ``hi`` the ``1 - percentile`` and
    ``percentile`` quantiles of the valid values, pixels outside
    ``[lo - multiple*(hi - lo), hi + multiple*(hi - lo)]`` are invalidated.
    """
    if not 0.5 <= percentile <= 1.0:
        raise ValidationError(f"percentile must be in [0.5, 1], got {percentile}")
    keep = field.valid.copy()
    if not np.any(keep):
        return field.copy()
    for comp in (field.dx, field.dy):
        values = comp[field.valid]
        lo, hi = np.quantile(values, [1.0 - percentile, percentile])
        spread = hi - lo
        keep &= (comp >= lo - multiple * spread) & (comp <= hi + multiple * spread)
    logger.debug(
        "Quantile outlier rejection removed %d of %d pixels",
        int(field.valid.sum() - keep.sum()), int(field.valid.sum()),
    )
    return DisparityField(field.offsets.copy(), keep)


def remove_small_blobs(field: DisparityField, min_area: int) -> DisparityField:
    """Invalidate 8-connected valid regions with fewer than ``min_area`` pixels."""
    if min_area <= 0 or not np.any(field.valid):
        return field
    labels, count = ndimage.label(field.valid, structure=np.ones((3, 3), dtype=bool))
    sizes = np.bincount(labels.ravel(), minlength=count + 1)
    small = sizes < min_area
    small[0] = False
    keep = field.valid & ~small[labels]
    return DisparityField(field.offsets.copy(), keep)
