# -*- coding: utf-8 -*-
"""
Fitting Functors - Model estimators plugged into robust fitting.

A functor knows the minimal sample size of its model, how to fit the model
from any number of correspondences, and how to score each correspondence
against a fitted model. ``RobustModelFitter`` drives functors without knowing
what the model is.

The homography and affine functors fit the transform that maps right-image
positions onto left-image positions: ``model @ right ~ left``.

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
from typing import Any, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.transforms import apply_transform_to_points


class FittingFunctor(ABC):
    """Model estimator used by ``RobustModelFitter``.

    Attributes
    ----------
    min_samples : int
        Correspondences needed for a minimal fit.
    """

    min_samples: int = 0

    @abstractmethod
    def fit(self, left: np.ndarray, right: np.ndarray) -> Any:
        """Fit a model to ``(N, 2)`` left/right positions.

        Raises
        ------
        np.linalg.LinAlgError
            If the sample is degenerate.
        """
        ...

    @abstractmethod
    def errors(self, model: Any, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        """Per-correspondence error of ``model``. Shape (N,)."""
        ...


def _normalize_points(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Hartley normalization: centroid at origin, mean distance sqrt(2).

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(normalized_points, T)`` where ``T`` is the 3x3 normalizing
        transform.
    """
    centroid = np.mean(points, axis=0)
    shifted = points - centroid
    mean_dist = np.mean(np.sqrt(np.sum(shifted ** 2, axis=1)))
    scale = 1.0 if mean_dist < 1e-12 else np.sqrt(2.0) / mean_dist
    T = np.array([
        [scale, 0.0, -scale * centroid[0]],
        [0.0, scale, -scale * centroid[1]],
        [0.0, 0.0, 1.0],
    ])
    return shifted * scale, T


class HomographyFittingFunctor(FittingFunctor):
    """Projective transform by the normalized Direct Linear Transform.

    Error is the Euclidean distance between ``H @ right`` and ``left``.
    """

    min_samples = 4

    def fit(self, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        n = left.shape[0]
        if n < self.min_samples:
            raise np.linalg.LinAlgError(
                f"Homography needs {self.min_samples} points, got {n}"
            )
        src, T_src = _normalize_points(right)
        dst, T_dst = _normalize_points(left)

        A = np.zeros((2 * n, 9))
        x, y = src[:, 0], src[:, 1]
        u, v = dst[:, 0], dst[:, 1]
        A[0::2, 0] = x
        A[0::2, 1] = y
        A[0::2, 2] = 1.0
        A[0::2, 6] = -u * x
        A[0::2, 7] = -u * y
        A[0::2, 8] = -u
        A[1::2, 3] = x
        A[1::2, 4] = y
        A[1::2, 5] = 1.0
        A[1::2, 6] = -v * x
        A[1::2, 7] = -v * y
        A[1::2, 8] = -v

        _, S, Vt = np.linalg.svd(A)
        # A rank deficit beyond one means collinear or repeated points.
        if S.size >= 8 and S[7] < 1e-10 * max(S[0], 1e-300):
            raise np.linalg.LinAlgError("Degenerate homography sample")
        H = np.linalg.inv(T_dst) @ Vt[-1].reshape(3, 3) @ T_src
        if abs(H[2, 2]) < 1e-12:
            raise np.linalg.LinAlgError("Homography at infinity")
        return H / H[2, 2]

    def errors(self, model: np.ndarray, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        diff = left - apply_transform_to_points(right, model)
        return np.sqrt(np.sum(diff ** 2, axis=1))


class AffineFittingFunctor(FittingFunctor):
    """Affine transform by linear least squares (6 degrees of freedom)."""

    min_samples = 3

    def fit(self, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        n = left.shape[0]
        if n < self.min_samples:
            raise np.linalg.LinAlgError(
                f"Affine fit needs {self.min_samples} points, got {n}"
            )
        A = np.hstack([right, np.ones((n, 1))])
        if np.linalg.matrix_rank(A) < 3:
            raise np.linalg.LinAlgError("Degenerate affine sample")
        params, _, _, _ = np.linalg.lstsq(A, left, rcond=None)
        M = np.eye(3)
        M[:2, :] = params.T
        return M

    def errors(self, model: np.ndarray, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        diff = left - apply_transform_to_points(right, model)
        return np.sqrt(np.sum(diff ** 2, axis=1))
