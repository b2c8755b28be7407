# -*- coding: utf-8 -*-
"""
Robust Model Fitting - Random sample consensus over correspondence sets.

``RobustModelFitter`` repeatedly fits a model to a random minimal sample,
keeps the candidate with the most inliers, then re-fits it over its inlier
set until the set stops changing. It is generic over the model: the plugged
``FittingFunctor`` supplies the minimal sample size, the estimator and the
error metric.

The random source is an injected ``numpy.random.Generator``, so a fit is
reproducible whenever the caller seeds it.

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
from typing import Any, Optional, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import FittingError, ValidationError
from stereocorr.matching.fitting import FittingFunctor

logger = logging.getLogger(__name__)

RandomSource = Union[None, int, np.random.Generator]


def make_rng(rng: RandomSource = None) -> np.random.Generator:
    """Return ``rng`` if it is a Generator, else seed a new one from it."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class RansacResult:
    """Outcome of a successful robust fit.

    Attributes
    ----------
    model : Any
        Model re-fit over the final inlier set.
    inlier_indices : np.ndarray
        Sorted indices of the inlier correspondences.
    num_samples : int
        Size of the input correspondence set.
    """

    def __init__(self, model: Any, inlier_indices: np.ndarray, num_samples: int) -> None:
        self.model = model
        self.inlier_indices = inlier_indices
        self.num_samples = num_samples

    @property
    def num_inliers(self) -> int:
        return int(self.inlier_indices.size)

    @property
    def inlier_ratio(self) -> float:
        return self.num_inliers / self.num_samples if self.num_samples else 0.0

    def __repr__(self) -> str:
        return (
            f"RansacResult(inliers={self.num_inliers}/{self.num_samples}, "
            f"ratio={self.inlier_ratio:.1%})"
        )


class RobustModelFitter:
    """Random sample consensus driver.

    Parameters
    ----------
    functor : FittingFunctor
        Model estimator and error metric.
    num_iterations : int
        Number of random trials.
    inlier_threshold : float
        A correspondence is an inlier when its error is below this value.
    min_num_output_inliers : int, optional
        Minimum inliers for a fit to succeed. Defaults to the functor's
        minimal sample size.
    rng : None, int or np.random.Generator
        Random source, or a seed for one.
    max_refinements : int
        Upper bound on re-fit rounds after the trials.

    Examples
    --------
    >>> from stereocorr.matching.fitting import HomographyFittingFunctor
    >>> fitter = RobustModelFitter(HomographyFittingFunctor(), 100, 3.0, rng=0)
    >>> result = fitter.fit(left_pts, right_pts)
    >>> H = result.model
    """

    def __init__(
        self,
        functor: FittingFunctor,
        num_iterations: int = 100,
        inlier_threshold: float = 3.0,
        min_num_output_inliers: Optional[int] = None,
        rng: RandomSource = None,
        max_refinements: int = 5,
    ) -> None:
        if num_iterations < 1:
            raise ValidationError(
                f"num_iterations must be >= 1, got {num_iterations}"
            )
        if inlier_threshold <= 0:
            raise ValidationError(
                f"inlier_threshold must be positive, got {inlier_threshold}"
            )
        self.functor = functor
        self.num_iterations = num_iterations
        self.inlier_threshold = inlier_threshold
        self.min_num_output_inliers = max(
            functor.min_samples, min_num_output_inliers or 0
        )
        self.rng = make_rng(rng)
        self.max_refinements = max_refinements

    def _inliers(self, model: Any, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        errors = self.functor.errors(model, left, right)
        return np.flatnonzero(np.nan_to_num(errors, nan=np.inf) < self.inlier_threshold)

    def fit(self, left: np.ndarray, right: np.ndarray) -> RansacResult:
        """Fit the functor's model robustly.

        Parameters
        ----------
        left : np.ndarray
            Left positions. Shape (N, 2).
        right : np.ndarray
            Right positions. Shape (N, 2).

        Returns
        -------
        RansacResult

        Raises
        ------
        FittingError
            If no trial reaches ``min_num_output_inliers``.
        """
        left = np.asarray(left, dtype=np.float64)
        right = np.asarray(right, dtype=np.float64)
        n = left.shape[0]
        k = self.functor.min_samples
        if n < max(k, self.min_num_output_inliers):
            raise FittingError(
                f"RANSAC needs at least {max(k, self.min_num_output_inliers)} "
                f"correspondences, got {n}"
            )

        best_model = None
        best_inliers = np.empty(0, dtype=np.intp)
        for _ in range(self.num_iterations):
            sample = self.rng.choice(n, size=k, replace=False)
            try:
                model = self.functor.fit(left[sample], right[sample])
            except np.linalg.LinAlgError:
                continue
            inliers = self._inliers(model, left, right)
            if inliers.size > best_inliers.size:
                best_model, best_inliers = model, inliers

        if best_model is None or best_inliers.size < self.min_num_output_inliers:
            raise FittingError(
                f"RANSAC found no model: best trial had {best_inliers.size} "
                f"inliers, {self.min_num_output_inliers} required"
            )

        model, inliers = best_model, best_inliers
        for _ in range(self.max_refinements):
            try:
                refit = self.functor.fit(left[inliers], right[inliers])
            except np.linalg.LinAlgError:
                break
            refit_inliers = self._inliers(refit, left, right)
            if refit_inliers.size < self.min_num_output_inliers:
                break
            model = refit
            if np.array_equal(refit_inliers, inliers):
                break
            inliers = refit_inliers

        logger.debug(
            "RANSAC kept %d of %d correspondences", inliers.size, n
        )
        return RansacResult(model, inliers, n)
