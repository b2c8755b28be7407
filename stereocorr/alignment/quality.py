# -*- coding: utf-8 -*-
"""
Alignment Quality - Accept or reject a fitted left/right transform pair.

``check_transform_pair`` is the single quality gate for every alignment
strategy. A single homography is checked as the pair ``(I, H)``. A pair is
rejected when either:

* the absolute determinant of the linear 2x2 part of the left or the right
  matrix is not strictly inside ``(0.1, 10)``, or
* the mean absolute row difference of the transformed correspondences is
  not strictly below the caller's improvement threshold (normally the row
  difference measured before fitting).

Correspondences are in crop-relative pixels, the same frame the transforms
are fitted and applied in.

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
from typing import NamedTuple, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import SearchRange
from stereocorr.exceptions import QualityGateError
from stereocorr.matching.correspondence import CorrespondenceSet
from stereocorr.transforms import linear_determinant

logger = logging.getLogger(__name__)

DETERMINANT_BOUNDS = (0.1, 10.0)


class QualityVerdict(NamedTuple):
    """Outcome of the quality gate.

    Attributes
    ----------
    accepted : bool
        Whether the pair may be used.
    reason : str
        Why it was rejected (empty when accepted).
    avg_delta_y : float
        Mean absolute row difference after the transforms, -1 if unknown.
    """

    accepted: bool
    reason: str
    avg_delta_y: float

    def raise_if_rejected(self) -> None:
        """Raise ``QualityGateError`` for a rejected pair."""
        if not self.accepted:
            raise QualityGateError(self.reason)


def check_transform_pair(
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
    correspondences: CorrespondenceSet,
    min_avg_delta_y: float,
    determinant_bounds: Tuple[float, float] = DETERMINANT_BOUNDS,
) -> QualityVerdict:
    """Validate a transform pair against its correspondences.

    Parameters
    ----------
    left_matrix, right_matrix : np.ndarray
        3x3 transforms of the left and right tiles.
    correspondences : CorrespondenceSet
        Crop-relative correspondences the pair was fitted on.
    min_avg_delta_y : float
        The transformed mean row difference must be strictly below this.
    determinant_bounds : Tuple[float, float]
        Exclusive bounds on the absolute linear determinant.

    Returns
    -------
    QualityVerdict
    """
    low, high = determinant_bounds
    for side, matrix in (('left', left_matrix), ('right', right_matrix)):
        det = abs(linear_determinant(matrix))
        if not (low < det < high):
            logger.warning(
                "Rejecting %s transform with determinant %.4g outside (%g, %g)",
                side, det, low, high,
            )
            return QualityVerdict(False, f"{side} determinant {det:.4g} out of bounds", -1.0)

    if len(correspondences) == 0:
        return QualityVerdict(False, "no correspondences to verify", -1.0)

    avg = correspondences.transformed(left_matrix, right_matrix).average_delta_y()
    if not avg < min_avg_delta_y:
        logger.debug(
            "Rejecting transform: avgDeltaY %.3f is not below %.3f", avg, min_avg_delta_y
        )
        return QualityVerdict(False, f"avgDeltaY {avg:.3f} did not improve", avg)
    return QualityVerdict(True, '', avg)


def search_range_from_correspondences(
    correspondences: CorrespondenceSet,
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
    multiplier: float = 2.0,
) -> SearchRange:
    """Range of transformed disparities, including zero, times ``multiplier``."""
    offsets = correspondences.transformed(left_matrix, right_matrix).offsets
    rng = SearchRange(0.0, 0.0, 0.0, 0.0).grow(SearchRange.from_offsets(offsets))
    return rng.multiply(multiplier)
