# -*- coding: utf-8 -*-
"""
Terrain Seed - Predict the low-resolution disparity from a DEM.

For every seed pixel, the left ray is intersected with the terrain by a
fixed-point iteration on height, and the intersection is projected into the
right image. The spread accounts for the DEM height uncertainty by measuring
how far the prediction moves between ``h - dem_error`` and ``h + dem_error``.

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
from typing import Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ValidationError
from stereocorr.geolocation.camera import CameraModel
from stereocorr.geolocation.elevation.base import ElevationModel

logger = logging.getLogger(__name__)


class DemDisparityPredictor:
    """Seed disparity from camera models and an elevation model.

    Parameters
    ----------
    left_camera, right_camera : CameraModel
        Full-resolution camera models.
    elevation : ElevationModel
        Terrain heights.
    dem_error : float
        Height uncertainty in meters.
    max_iterations : int
        Cap on the ray/terrain fixed-point iterations.
    tolerance : float
        Height change (m) at which the iteration has converged.
    """

    def __init__(
        self,
        left_camera: CameraModel,
        right_camera: CameraModel,
        elevation: ElevationModel,
        dem_error: float = 5.0,
        max_iterations: int = 20,
        tolerance: float = 0.01,
    ) -> None:
        if dem_error < 0:
            raise ValidationError(f"dem_error must be non-negative, got {dem_error}")
        self.left_camera = left_camera
        self.right_camera = right_camera
        self.elevation = elevation
        self.dem_error = dem_error
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def intersect_terrain(self, pixels: np.ndarray) -> np.ndarray:
        """Terrain height under each full-resolution left pixel.

        Parameters
        ----------
        pixels : np.ndarray
            Shape (N, 2).

        Returns
        -------
        np.ndarray
            Heights. Shape (N,). NaN where the DEM has no coverage.
        """
        heights = np.zeros(pixels.shape[0], dtype=np.float64)
        active = np.ones(pixels.shape[0], dtype=bool)
        for _ in range(self.max_iterations):
            if not np.any(active):
                break
            ground = self.left_camera.back_project(pixels[active], heights[active])
            terrain = np.asarray(
                self.elevation.get_elevation(ground[:, 1], ground[:, 0]), dtype=np.float64)
            change = np.abs(terrain - heights[active])
            heights[active] = terrain
            idx = np.flatnonzero(active)
            active[idx[~(change > self.tolerance)]] = False
        return heights

    def _disparity(self, pixels: np.ndarray, heights: np.ndarray) -> np.ndarray:
        ground = self.left_camera.back_project(pixels, heights)
        return self.right_camera.project(ground) - pixels

    def predict(
        self,
        sub_shape: Tuple[int, int],
        full_size: Tuple[int, int],
    ) -> Tuple[DisparityField, DisparityField]:
        """Seed and spread over a subsampled grid.

        Parameters
        ----------
        sub_shape : Tuple[int, int]
            Seed ``(rows, cols)``.
        full_size : Tuple[int, int]
            Full-resolution ``(cols, rows)``.

        Returns
        -------
        Tuple[DisparityField, DisparityField]
            Seed disparity in seed pixels, and its integer spread.
        """
        rows, cols = sub_shape
        scale = np.array([cols / float(full_size[0]), rows / float(full_size[1])])
        ys, xs = np.mgrid[0:rows, 0:cols]
        pixels = np.column_stack([xs.ravel(), ys.ravel()]).astype(np.float64) / scale

        heights = self.intersect_terrain(pixels)
        valid = np.isfinite(heights)
        seed = np.zeros((pixels.shape[0], 2), dtype=np.float64)
        spread = np.zeros_like(seed)
        if np.any(valid):
            p, h = pixels[valid], heights[valid]
            seed[valid] = self._disparity(p, h) * scale
            upper = self._disparity(p, h + self.dem_error) * scale
            lower = self._disparity(p, h - self.dem_error) * scale
            spread[valid] = np.ceil(np.abs(upper - lower) / 2.0)

        valid = valid.reshape(rows, cols)
        logger.info(
            "Terrain seed covers %d of %d pixels", int(valid.sum()), valid.size,
        )
        return (DisparityField(seed.reshape(rows, cols, 2).astype(np.float32), valid),
                DisparityField(spread.reshape(rows, cols, 2).astype(np.float32), valid.copy()))
