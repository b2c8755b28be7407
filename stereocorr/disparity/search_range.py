# -*- coding: utf-8 -*-
"""
Search Range Estimation - Bound the disparity search from sparse evidence.

Two estimators are provided:

* ``from_correlation`` runs a matcher and takes the bounding box of its
  valid output.
* ``from_correspondences`` builds 2000-bin histograms of the ``dx`` and
  ``dy`` offsets of interest-point matches, keeps the window between the
  5th and 95th percentile bins, and inflates it by 2 about its center.

The histogram estimator is robust to the few gross mismatches that survive
RANSAC, which would otherwise blow up a plain bounding box.

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
from typing import Optional, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import SearchRange
from stereocorr.correlation.base import Matcher
from stereocorr.exceptions import DegenerateGeometryError, ValidationError
from stereocorr.matching.correspondence import CorrespondenceSet

logger = logging.getLogger(__name__)

NUM_BINS = 2000
LOW_PERCENTILE = 0.05
HIGH_PERCENTILE = 0.95
INFLATION = 2.0


def histogram_percentile_bounds(
    values: np.ndarray,
    num_bins: int = NUM_BINS,
    low_percentile: float = LOW_PERCENTILE,
    high_percentile: float = HIGH_PERCENTILE,
) -> Tuple[float, float]:
    """Centers of the percentile bins of a 1D sample.

    Values are binned with ``round((n - 1) * (v - min) / range)`` and the
    reported bound is the center of the first bin whose cumulative fraction
    reaches the percentile.

    Parameters
    ----------
    values : np.ndarray
        Sample. Shape (N,), N > 0.
    num_bins : int
        Histogram resolution.
    low_percentile, high_percentile : float
        Fractions in ``[0, 1]``.

    Returns
    -------
    Tuple[float, float]
        ``(low, high)``. Both equal the value when the sample is constant.
    """
    values = np.asarray(values, dtype=np.float64).ravel()
    if values.size == 0:
        raise ValidationError("Cannot compute percentiles of an empty sample")
    lo = float(values.min())
    hi = float(values.max())
    span = hi - lo
    if span <= 0:
        return (lo, lo)

    bins = np.rint((num_bins - 1) * (values - lo) / span).astype(np.intp)
    bins = np.clip(bins, 0, num_bins - 1)
    counts = np.bincount(bins, minlength=num_bins)
    cumulative = np.cumsum(counts) / float(values.size)

    def bin_center(fraction: float) -> float:
        index = int(np.searchsorted(cumulative, fraction, side='left'))
        index = min(index, num_bins - 1)
        return lo + (index + 0.5) * span / num_bins

    return (bin_center(low_percentile), bin_center(high_percentile))


class SearchRangeEstimator:
    """Derive a global disparity search range.

    Parameters
    ----------
    num_bins : int
        Histogram resolution of the correspondence estimator.
    low_percentile, high_percentile : float
        Percentiles bounding the tight window.
    inflation : float
        Factor applied to the tight window about its center.

    Examples
    --------
    >>> estimator = SearchRangeEstimator()
    >>> rng = estimator.from_correspondences(matches, scale=0.25)
    """

    def __init__(
        self,
        num_bins: int = NUM_BINS,
        low_percentile: float = LOW_PERCENTILE,
        high_percentile: float = HIGH_PERCENTILE,
        inflation: float = INFLATION,
    ) -> None:
        if num_bins < 1:
            raise ValidationError(f"num_bins must be positive, got {num_bins}")
        if not 0.0 <= low_percentile <= high_percentile <= 1.0:
            raise ValidationError(
                f"Percentiles must satisfy 0 <= low <= high <= 1, got "
                f"{low_percentile}, {high_percentile}"
            )
        self.num_bins = num_bins
        self.low_percentile = low_percentile
        self.high_percentile = high_percentile
        self.inflation = inflation

    @staticmethod
    def from_correlation(
        matcher: Matcher,
        left: np.ndarray,
        right: np.ndarray,
        left_mask: Optional[np.ndarray],
        right_mask: Optional[np.ndarray],
        search_range: SearchRange,
    ) -> SearchRange:
        """Bounding box of the valid disparities a matcher finds."""
        field = matcher.match(left, right, left_mask, right_mask, search_range)
        found = field.disparity_range()
        logger.info("Correlation found %d matches spanning %s", field.num_valid, found)
        return found

    def _offsets(
        self,
        correspondences: CorrespondenceSet,
        scale: float,
        left_matrix: Optional[np.ndarray],
        right_matrix: Optional[np.ndarray],
    ) -> np.ndarray:
        if len(correspondences) == 0:
            raise DegenerateGeometryError(
                "No interest point correspondences remain to estimate the search range"
            )
        if scale <= 0:
            raise ValidationError(f"scale must be positive, got {scale}")
        pairs = correspondences.transformed(left_matrix, right_matrix)
        return pairs.offsets / scale

    def tight_range(
        self,
        correspondences: CorrespondenceSet,
        scale: float = 1.0,
        left_matrix: Optional[np.ndarray] = None,
        right_matrix: Optional[np.ndarray] = None,
    ) -> SearchRange:
        """Percentile window of the offsets, before inflation.

        Parameters
        ----------
        correspondences : CorrespondenceSet
            Interest point matches.
        scale : float
            Resolution of the matches relative to full resolution; offsets
            are divided by it.
        left_matrix, right_matrix : np.ndarray, optional
            Global alignment transforms applied to each side first.

        Raises
        ------
        DegenerateGeometryError
            If there are no correspondences.
        """
        offsets = self._offsets(correspondences, scale, left_matrix, right_matrix)
        min_x, max_x = histogram_percentile_bounds(
            offsets[:, 0], self.num_bins, self.low_percentile, self.high_percentile)
        min_y, max_y = histogram_percentile_bounds(
            offsets[:, 1], self.num_bins, self.low_percentile, self.high_percentile)
        return SearchRange(min_x, min_y, max_x, max_y)

    def from_correspondences(
        self,
        correspondences: CorrespondenceSet,
        scale: float = 1.0,
        left_matrix: Optional[np.ndarray] = None,
        right_matrix: Optional[np.ndarray] = None,
    ) -> SearchRange:
        """Inflated percentile window of the correspondence offsets."""
        tight = self.tight_range(correspondences, scale, left_matrix, right_matrix)
        inflated = tight.inflate(self.inflation)
        logger.info(
            "Search range from %d correspondences: %s (tight %s)",
            len(correspondences), inflated, tight,
        )
        return inflated
