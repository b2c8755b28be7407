# -*- coding: utf-8 -*-
"""
Triangulation Filter - Discard correspondences with implausible geometry.

Each correspondence is triangulated by searching the height along the left
pixel's ray that minimizes the right-image reprojection error. Pairs whose
height falls outside ``elevation_limit``, or whose ground position falls
outside ``lon_lat_limit``, are dropped before the search range is estimated.

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
from typing import Optional, Sequence, Tuple

# Third-party
import numpy as np
from scipy.optimize import minimize_scalar

# stereocorr internal
from stereocorr.geolocation.camera import CameraModel
from stereocorr.matching.correspondence import CorrespondenceSet

logger = logging.getLogger(__name__)

# Height bracket (m) when no elevation limit is configured.
DEFAULT_HEIGHT_BOUNDS = (-500.0, 9000.0)


def triangulate(
    left_camera: CameraModel,
    right_camera: CameraModel,
    left_pixel: Sequence[float],
    right_pixel: Sequence[float],
    height_bounds: Tuple[float, float] = DEFAULT_HEIGHT_BOUNDS,
) -> Tuple[np.ndarray, float]:
    """Ground point of one full-resolution pixel pair.

    Parameters
    ----------
    left_camera, right_camera : CameraModel
        Camera models of the two images.
    left_pixel, right_pixel : Sequence[float]
        ``(x, y)`` in full-resolution pixels.
    height_bounds : Tuple[float, float]
        Heights searched along the left ray.

    Returns
    -------
    Tuple[np.ndarray, float]
        ``(lon, lat, height)`` and the right reprojection error in pixels.
    """
    left_pixel = np.asarray(left_pixel, dtype=np.float64).reshape(1, 2)
    right_pixel = np.asarray(right_pixel, dtype=np.float64).reshape(1, 2)

    def reprojection_error(height: float) -> float:
        ground = left_camera.back_project(left_pixel, height)
        return float(np.sum((right_camera.project(ground) - right_pixel) ** 2))

    result = minimize_scalar(reprojection_error, bounds=height_bounds, method='bounded',
                             options={'xatol': 1e-3})
    point = left_camera.back_project(left_pixel, result.x)[0]
    return point, float(np.sqrt(result.fun))


def filter_by_lonlat_and_elevation(
    left_camera: CameraModel,
    right_camera: CameraModel,
    correspondences: CorrespondenceSet,
    elevation_limit: Optional[Tuple[float, float]] = None,
    lon_lat_limit: Optional[Tuple[float, float, float, float]] = None,
    scale: float = 1.0,
) -> CorrespondenceSet:
    """Keep the correspondences that triangulate inside the limits.

    Parameters
    ----------
    left_camera, right_camera : CameraModel
        Full-resolution camera models.
    correspondences : CorrespondenceSet
        Pairs measured at ``scale`` times full resolution.
    elevation_limit : Tuple[float, float], optional
        Allowed ``(min, max)`` height in meters.
    lon_lat_limit : Tuple[float, float, float, float], optional
        Allowed ``(min_lon, min_lat, max_lon, max_lat)``.
    scale : float
        Resolution of the correspondences relative to full resolution.

    Returns
    -------
    CorrespondenceSet
        The surviving pairs, at their original resolution.
    """
    if elevation_limit is None and lon_lat_limit is None:
        return correspondences
    if len(correspondences) == 0:
        return correspondences

    if elevation_limit is not None:
        lo, hi = float(elevation_limit[0]), float(elevation_limit[1])
        pad = max(hi - lo, 100.0)
        bounds = (lo - pad, hi + pad)
    else:
        bounds = DEFAULT_HEIGHT_BOUNDS

    full = correspondences.scaled(1.0 / scale)
    keep = np.zeros(len(full), dtype=bool)
    for i in range(len(full)):
        (lon, lat, height), _ = triangulate(
            left_camera, right_camera, full.left[i], full.right[i], bounds)
        ok = True
        if elevation_limit is not None:
            ok = lo <= height <= hi
        if ok and lon_lat_limit is not None:
            min_lon, min_lat, max_lon, max_lat = lon_lat_limit
            ok = min_lon <= lon <= max_lon and min_lat <= lat <= max_lat
        keep[i] = ok

    logger.info(
        "Geometric filter kept %d of %d correspondences", int(keep.sum()), len(keep)
    )
    return correspondences.subset(np.flatnonzero(keep))
