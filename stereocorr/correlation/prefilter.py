# -*- coding: utf-8 -*-
"""
Image Prefilters - Contrast normalization applied before matching.

``LOG`` takes the Laplacian of Gaussian and ``SUBTRACTED_MEAN`` removes a
Gaussian-smoothed local mean, both with the configured sigma. ``NONE``
returns the image as float64. Invalid pixels are filled with the valid mean
before filtering so they do not bleed into their neighbors, and come back
as zero.

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
from typing import Optional

# Third-party
import numpy as np
from scipy.ndimage import gaussian_filter, gaussian_laplace

# stereocorr internal
from stereocorr.vocabulary import PrefilterMode


def prefilter_image(
    image: np.ndarray,
    mode: PrefilterMode,
    sigma: float,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Apply a matching prefilter.

    Parameters
    ----------
    image : np.ndarray
        Raster. Shape (rows, cols).
    mode : PrefilterMode
        Which filter to apply.
    sigma : float
        Gaussian sigma in pixels. Zero disables filtering.
    mask : np.ndarray, optional
        Boolean validity mask.

    Returns
    -------
    np.ndarray
        Filtered float64 raster.
    """
    img = np.asarray(image, dtype=np.float64)
    valid = np.isfinite(img)
    if mask is not None:
        valid &= mask
    filled = np.where(valid, img, img[valid].mean() if np.any(valid) else 0.0)

    if mode is PrefilterMode.NONE or sigma <= 0:
        out = filled
    elif mode is PrefilterMode.LOG:
        out = gaussian_laplace(filled, sigma)
    elif mode is PrefilterMode.SUBTRACTED_MEAN:
        out = filled - gaussian_filter(filled, sigma)
    else:
        raise ValueError(f"Unknown prefilter mode: {mode}")

    return np.where(valid, out, 0.0)
