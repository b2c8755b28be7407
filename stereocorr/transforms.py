# -*- coding: utf-8 -*-
"""
Transform Utilities - 3x3 homogeneous transforms on (x, y) pixel coordinates.

Helpers shared by robust fitting, piecewise alignment and tile reconciliation:
point mapping, inversion, determinant checks, and inverse-mapped image
warping through ``scipy.ndimage.map_coordinates``.

Points are ``(N, 2)`` arrays whose columns are ``(x, y)`` = ``(col, row)``.
Matrices act on column vectors ``[x, y, 1]``. Affine transforms are either
``(2, 3)`` or ``(3, 3)`` with last row ``[0, 0, 1]``.

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
from typing import Optional, Tuple

# Third-party
import numpy as np
from scipy.ndimage import map_coordinates


def identity() -> np.ndarray:
    """3x3 float64 identity transform."""
    return np.eye(3, dtype=np.float64)


def as_homogeneous(matrix: np.ndarray) -> np.ndarray:
    """Promote a ``(2, 3)`` affine matrix to ``(3, 3)``."""
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape == (3, 3):
        return matrix
    if matrix.shape == (2, 3):
        full = np.eye(3)
        full[:2, :] = matrix
        return full
    raise ValueError(
        f"Transform matrix must be (2, 3) or (3, 3), got {matrix.shape}"
    )


def is_identity(matrix: np.ndarray, atol: float = 1e-9) -> bool:
    """Whether ``matrix`` is the identity up to scale."""
    m = as_homogeneous(matrix)
    if abs(m[2, 2]) < 1e-15:
        return False
    return bool(np.allclose(m / m[2, 2], np.eye(3), atol=atol))


def linear_determinant(matrix: np.ndarray) -> float:
    """Determinant of the upper-left 2x2 block."""
    m = as_homogeneous(matrix)
    return float(m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0])


def invert(matrix: np.ndarray) -> np.ndarray:
    """Inverse of a 3x3 transform, normalized so ``[2, 2] == 1``."""
    inv = np.linalg.inv(as_homogeneous(matrix))
    if abs(inv[2, 2]) > 1e-15:
        inv = inv / inv[2, 2]
    return inv


def apply_transform_to_points(
    points: np.ndarray,
    transform_matrix: np.ndarray,
) -> np.ndarray:
    """Apply a spatial transform to a set of 2D points.

    Parameters
    ----------
    points : np.ndarray
        Points to transform. Shape (N, 2), columns are (x, y).
    transform_matrix : np.ndarray
        Affine (2, 3) or projective (3, 3) transform matrix.

    Returns
    -------
    np.ndarray
        Transformed points. Shape (N, 2), columns are (x, y).
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    m = as_homogeneous(transform_matrix)
    pts_h = np.hstack([points, np.ones((points.shape[0], 1))])
    result_h = pts_h @ m.T
    w = result_h[:, 2:3]
    w = np.where(np.abs(w) < 1e-12, 1e-12, w)
    return result_h[:, :2] / w


def compute_residuals(
    target_points: np.ndarray,
    source_points: np.ndarray,
    transform_matrix: np.ndarray,
) -> np.ndarray:
    """Euclidean distance between ``T(source)`` and ``target`` per point."""
    diff = target_points - apply_transform_to_points(source_points, transform_matrix)
    return np.sqrt(np.sum(diff ** 2, axis=1))


def transformed_extent(
    shape: Tuple[int, int],
    transform_matrix: np.ndarray,
) -> Tuple[float, float, float, float]:
    """Bounding box ``(min_x, min_y, max_x, max_y)`` of a transformed image.

    Parameters
    ----------
    shape : Tuple[int, int]
        ``(rows, cols)`` of the image.
    transform_matrix : np.ndarray
        Forward transform.
    """
    rows, cols = shape
    corners = np.array([
        [0, 0],
        [cols, 0],
        [cols, rows],
        [0, rows],
    ], dtype=np.float64)
    out = apply_transform_to_points(corners, transform_matrix)
    return (float(out[:, 0].min()), float(out[:, 1].min()),
            float(out[:, 0].max()), float(out[:, 1].max()))


def _source_grid(
    transform_matrix: np.ndarray,
    output_shape: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray]:
    """Source ``(rows, cols)`` sampling grid for an inverse-mapped warp."""
    out_rows, out_cols = output_shape
    ys, xs = np.mgrid[0:out_rows, 0:out_cols]
    pts = np.stack([xs.ravel(), ys.ravel()], axis=1).astype(np.float64)
    src = apply_transform_to_points(pts, invert(transform_matrix))
    return (src[:, 1].reshape(out_rows, out_cols),
            src[:, 0].reshape(out_rows, out_cols))


def warp_image(
    image: np.ndarray,
    transform_matrix: np.ndarray,
    output_shape: Optional[Tuple[int, int]] = None,
    order: int = 1,
    fill_value: float = 0.0,
) -> np.ndarray:
    """Warp an image through a forward transform via inverse mapping.

    Output pixel ``q`` samples the input at ``T^-1(q)``.

    Parameters
    ----------
    image : np.ndarray
        Input image. Shape (rows, cols).
    transform_matrix : np.ndarray
        Forward transform (input frame -> output frame).
    output_shape : Optional[Tuple[int, int]]
        Output ``(rows, cols)``. If None, uses the input shape.
    order : int
        Interpolation order: 0=nearest, 1=bilinear, 3=bicubic.
    fill_value : float
        Value for pixels that map outside the input.

    Returns
    -------
    np.ndarray
        Warped image with shape ``output_shape``.
    """
    if output_shape is None:
        output_shape = image.shape[:2]
    src_rows, src_cols = _source_grid(transform_matrix, output_shape)
    return map_coordinates(
        np.asarray(image, dtype=np.float64),
        [src_rows, src_cols],
        order=order,
        mode='constant',
        cval=fill_value,
    )


def warp_mask(
    mask: np.ndarray,
    transform_matrix: np.ndarray,
    output_shape: Optional[Tuple[int, int]] = None,
) -> np.ndarray:
    """Warp a boolean validity mask with nearest sampling.

    Pixels mapping outside the input are invalid.
    """
    warped = warp_image(mask.astype(np.float64), transform_matrix,
                        output_shape=output_shape, order=0, fill_value=0.0)
    return warped > 0.5
