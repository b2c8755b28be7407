# -*- coding: utf-8 -*-
"""
Affine Epipolar Rectification - Restricted transform pairs for local alignment.

Under an affine camera, corresponding points satisfy a linear epipolar
constraint ``a*xr + b*yr + c*xl + d*yl + e = 0`` whose epipolar lines are
parallel. ``affine_epipolar_rectification`` finds a pair of affine
transforms that makes those lines horizontal and equalizes row coordinates
of corresponding points, without the perspective terms of a homography:

1. Fit the affine fundamental matrix from the centered 4D correspondence
   data (the right singular vector of the smallest singular value).
2. Rotate each image so its epipolar direction becomes the x axis.
3. Solve the right image's vertical scale and offset by least squares.
4. Solve a horizontal shear/scale/offset, split between both images.

``AffineEpipolarFittingFunctor`` exposes step 1-4 to ``RobustModelFitter``.

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
import math
from typing import Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import FittingError
from stereocorr.matching.fitting import FittingFunctor
from stereocorr.transforms import apply_transform_to_points, transformed_extent

_EPS = 1e-12


def linear_affine_fundamental_matrix(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Affine fundamental matrix ``F`` with ``[xr, yr, 1] F [xl, yl, 1]^T = 0``.

    Only ``F[0, 2]``, ``F[1, 2]``, ``F[2, 0]``, ``F[2, 1]`` and ``F[2, 2]``
    are non-zero.
    """
    data = np.column_stack([right[:, 0], right[:, 1], left[:, 0], left[:, 1]])
    mean = data.mean(axis=0)
    _, _, Vt = np.linalg.svd(data - mean, full_matrices=True)
    normal = Vt[-1]
    F = np.zeros((3, 3))
    F[0, 2] = normal[0]
    F[1, 2] = normal[1]
    F[2, 0] = normal[2]
    F[2, 1] = normal[3]
    F[2, 2] = -float(normal @ mean)
    return F


def _epipolar_rotation(ex: float, ey: float) -> np.ndarray:
    norm = math.hypot(ex, ey)
    if norm < _EPS:
        raise np.linalg.LinAlgError("Degenerate epipolar direction")
    ex, ey = ex / norm, ey / norm
    if ex < 0:
        ex, ey = -ex, -ey
    return np.array([
        [ex, ey, 0.0],
        [-ey, ex, 0.0],
        [0.0, 0.0, 1.0],
    ])


def solve_y_scaling(
    left: np.ndarray,
    right: np.ndarray,
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
) -> np.ndarray:
    """Rescale and shift the right rows onto the left rows (least squares)."""
    yl = apply_transform_to_points(left, left_matrix)[:, 1]
    yr = apply_transform_to_points(right, right_matrix)[:, 1]
    A = np.column_stack([yr, np.ones_like(yr)])
    (scale, offset), _, rank, _ = np.linalg.lstsq(A, yl, rcond=None)
    if rank < 2:
        raise np.linalg.LinAlgError("Degenerate vertical scaling")
    out = right_matrix.copy()
    out[1, :] *= scale
    out[1, 2] = offset
    return out


def solve_x_shear(
    left: np.ndarray,
    right: np.ndarray,
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Fit ``xl' ~ a*xr' + b*yr' + c`` and split the shear between images."""
    pl = apply_transform_to_points(left, left_matrix)
    pr = apply_transform_to_points(right, right_matrix)
    A = np.column_stack([pr[:, 0], pr[:, 1], np.ones(len(pr))])
    (a, b, c), _, rank, _ = np.linalg.lstsq(A, pl[:, 0], rcond=None)
    if rank < 3:
        raise np.linalg.LinAlgError("Degenerate horizontal shear")
    shear_left = np.eye(3)
    shear_left[0, 1] = -b / 2.0
    shear_right = np.eye(3)
    shear_right[0, 0] = a
    shear_right[0, 1] = b / 2.0
    shear_right[0, 2] = c
    return shear_left @ left_matrix, shear_right @ right_matrix


def affine_epipolar_rectification(
    left: np.ndarray,
    right: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Affine transform pair making corresponding rows equal.

    Parameters
    ----------
    left, right : np.ndarray
        Corresponding positions. Shape (N, 2), N >= 4.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(left_matrix, right_matrix)``, each 3x3 affine.

    Raises
    ------
    np.linalg.LinAlgError
        If the correspondences are degenerate.
    """
    if left.shape[0] < 4:
        raise np.linalg.LinAlgError(
            f"Affine epipolar rectification needs 4 points, got {left.shape[0]}"
        )
    F = linear_affine_fundamental_matrix(left, right)
    left_matrix = _epipolar_rotation(-F[2, 1], F[2, 0])
    right_matrix = _epipolar_rotation(-F[1, 2], F[0, 2])
    right_matrix = solve_y_scaling(left, right, left_matrix, right_matrix)
    return solve_x_shear(left, right, left_matrix, right_matrix)


def fit_render_frame(
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
    left_shape: Tuple[int, int],
    right_shape: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray, Tuple[int, int]]:
    """Translate a rectifying pair onto the overlap of both warped images.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, Tuple[int, int]]
        Translated ``(left_matrix, right_matrix)`` and the render shape
        ``(rows, cols)`` of the intersection of both transformed extents.

    Raises
    ------
    FittingError
        If the transformed images do not overlap.
    """
    l0x, l0y, l1x, l1y = transformed_extent(left_shape, left_matrix)
    r0x, r0y, r1x, r1y = transformed_extent(right_shape, right_matrix)
    min_x, min_y = max(l0x, r0x), max(l0y, r0y)
    max_x, max_y = min(l1x, r1x), min(l1y, r1y)
    if max_x - min_x < 1 or max_y - min_y < 1:
        raise FittingError("Rectified tiles do not overlap")

    shift = np.eye(3)
    shift[0, 2] = -min_x
    shift[1, 2] = -min_y
    shape = (int(math.ceil(max_y - min_y)), int(math.ceil(max_x - min_x)))
    return shift @ left_matrix, shift @ right_matrix, shape


class AffineEpipolarFittingFunctor(FittingFunctor):
    """Affine epipolar rectification as a robust-fitting model.

    The model is the ``(left_matrix, right_matrix)`` pair. The error of a
    correspondence is its remaining row difference after rectification.
    """

    min_samples = 4

    def fit(self, left: np.ndarray, right: np.ndarray):
        return affine_epipolar_rectification(left, right)

    def errors(self, model, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        left_matrix, right_matrix = model
        yl = apply_transform_to_points(left, left_matrix)[:, 1]
        yr = apply_transform_to_points(right, right_matrix)[:, 1]
        return np.abs(yl - yr)
