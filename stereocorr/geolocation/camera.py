# -*- coding: utf-8 -*-
"""
Camera Models - Ground-to-image projection interface.

``CameraModel`` is the collaborator the terrain seed and the geometric
correspondence filter rely on. It maps ground points ``(lon, lat, height)``
to image pixels ``(x, y)`` and back-projects a pixel at a given height.
Sensor-specific models are implemented outside this package;
``AffineCameraModel`` is the concrete model shipped here and is a good
approximation of a narrow-field pushbroom camera over a small scene.

Coordinate Conventions
----------------------
- **Pixels:** ``(x, y)`` = ``(col, row)``, origin at the top-left pixel center.
- **Ground:** ``(lon, lat, height)`` in degrees and meters.

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
from abc import ABC, abstractmethod
from typing import Tuple, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import ValidationError


def _as_points(points: np.ndarray, width: int, name: str) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] != width:
        raise ValidationError(f"{name} must have shape (N, {width}), got {arr.shape}")
    return arr


class CameraModel(ABC):
    """Abstract ground-to-image model.

    Subclasses implement ``_project_array`` and ``_back_project_array``,
    which operate on 1D arrays. The public methods handle shape checking and
    broadcasting of scalar heights.
    """

    @abstractmethod
    def _project_array(
        self, lons: np.ndarray, lats: np.ndarray, heights: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Ground arrays to ``(xs, ys)`` pixel arrays."""
        ...

    @abstractmethod
    def _back_project_array(
        self, xs: np.ndarray, ys: np.ndarray, heights: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Pixel arrays at the given heights to ``(lons, lats)``."""
        ...

    def project(self, points: np.ndarray) -> np.ndarray:
        """Project ground points into the image.

        Parameters
        ----------
        points : np.ndarray
            ``(lon, lat, height)`` rows. Shape (N, 3) or (3,).

        Returns
        -------
        np.ndarray
            Pixels ``(x, y)``. Shape (N, 2).
        """
        pts = _as_points(points, 3, 'points')
        xs, ys = self._project_array(pts[:, 0], pts[:, 1], pts[:, 2])
        return np.column_stack([xs, ys])

    def back_project(
        self,
        pixels: np.ndarray,
        heights: Union[float, np.ndarray],
    ) -> np.ndarray:
        """Intersect pixel rays with constant-height surfaces.

        Parameters
        ----------
        pixels : np.ndarray
            Pixels ``(x, y)``. Shape (N, 2) or (2,).
        heights : float or np.ndarray
            Height per pixel, or one height for all. Shape (N,).

        Returns
        -------
        np.ndarray
            Ground points ``(lon, lat, height)``. Shape (N, 3).
        """
        px = _as_points(pixels, 2, 'pixels')
        h = np.broadcast_to(np.asarray(heights, dtype=np.float64), (px.shape[0],))
        lons, lats = self._back_project_array(px[:, 0], px[:, 1], h)
        return np.column_stack([lons, lats, h])


class AffineCameraModel(CameraModel):
    """Affine projection ``pixel = A @ [lon, lat, h] + b``.

    Parameters
    ----------
    matrix : np.ndarray
        Linear part ``A``. Shape (2, 3).
    offset : np.ndarray
        Translation ``b``. Shape (2,).

    Raises
    ------
    ValidationError
        If shapes are wrong or the ground-plane part of ``A`` is singular.

    Examples
    --------
    >>> cam = AffineCameraModel([[1000.0, 0.0, 0.0], [0.0, -1000.0, 0.0]],
    ...                         [0.0, 500.0])
    >>> cam.project([0.1, 0.2, 0.0])
    array([[100., 300.]])
    """

    def __init__(self, matrix: np.ndarray, offset: np.ndarray) -> None:
        self.matrix = np.asarray(matrix, dtype=np.float64)
        self.offset = np.asarray(offset, dtype=np.float64).reshape(-1)
        if self.matrix.shape != (2, 3) or self.offset.shape != (2,):
            raise ValidationError(
                f"AffineCameraModel needs a (2, 3) matrix and (2,) offset, got "
                f"{self.matrix.shape} and {self.offset.shape}"
            )
        ground = self.matrix[:, :2]
        if abs(np.linalg.det(ground)) < 1e-12:
            raise ValidationError("Ground-plane part of the camera matrix is singular")
        self._ground_inv = np.linalg.inv(ground)

    def _project_array(self, lons, lats, heights):
        pts = np.vstack([lons, lats, heights])
        px = self.matrix @ pts + self.offset[:, np.newaxis]
        return px[0], px[1]

    def _back_project_array(self, xs, ys, heights):
        rhs = (np.vstack([xs, ys]) - self.offset[:, np.newaxis]
               - np.outer(self.matrix[:, 2], heights))
        ground = self._ground_inv @ rhs
        return ground[0], ground[1]

    def __repr__(self) -> str:
        return f"AffineCameraModel(matrix={self.matrix.tolist()}, offset={self.offset.tolist()})"
