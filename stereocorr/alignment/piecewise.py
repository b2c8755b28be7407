# -*- coding: utf-8 -*-
"""
Piecewise Alignment - Per-tile local realignment before matching.

Global rectification leaves residual vertical disparity that varies across a
scene. ``PiecewiseAligner`` measures it on each tile from local feature
correspondences and, when it is large enough to matter, fits a transform
pair that removes it:

* ``AlignmentMethod.HOMOGRAPHY`` warps the right tile onto the left with a
  full projective transform (the left transform is identity).
* ``AlignmentMethod.AFFINE_EPIPOLAR`` warps both tiles with a restricted
  affine pair that makes epipolar lines horizontal, rendered on the overlap
  of the two warped tiles.

Every failure degrades to identity: no correspondences, too little residual
to fix, a failed robust fit, or a rejected quality verdict all return the
identity pair with the caller's search range untouched.

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
from typing import NamedTuple, Optional, Tuple, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.alignment.epipolar import (
    AffineEpipolarFittingFunctor,
    fit_render_frame,
)
from stereocorr.alignment.local_homography import CellHandle
from stereocorr.alignment.quality import (
    check_transform_pair,
    search_range_from_correspondences,
)
from stereocorr.bbox import SearchRange
from stereocorr.diagnostics import DiagnosticsSink, NullDiagnostics
from stereocorr.exceptions import FittingError, ValidationError
from stereocorr.matching.correspondence import CorrespondenceSet
from stereocorr.matching.features import FeatureCorrespondenceFinder
from stereocorr.matching.fitting import HomographyFittingFunctor
from stereocorr.matching.ransac import RobustModelFitter
from stereocorr.settings import StereoSettings
from stereocorr.tiling import Tile
from stereocorr.transforms import identity, invert
from stereocorr.vocabulary import AlignmentMethod

logger = logging.getLogger(__name__)


class AlignmentResult(NamedTuple):
    """Outcome of aligning one tile.

    Attributes
    ----------
    left_matrix, right_matrix : np.ndarray
        Transforms from the left/right crop frames into the render frame.
    search_range : SearchRange
        Range to search in the render frame, in full-resolution pixels.
    render_shape : Tuple[int, int]
        ``(rows, cols)`` of the warped rasters.
    aligned : bool
        False when the identity fallback was taken.
    avg_delta_y : float
        Mean absolute row difference before alignment (-1 if unknown).
    """

    left_matrix: np.ndarray
    right_matrix: np.ndarray
    search_range: SearchRange
    render_shape: Tuple[int, int]
    aligned: bool
    avg_delta_y: float


class PiecewiseAligner:
    """Fit per-tile transform pairs from local correspondences.

    Parameters
    ----------
    method : AlignmentMethod
        ``HOMOGRAPHY`` or ``AFFINE_EPIPOLAR``.
    finder : FeatureCorrespondenceFinder
        Local correspondence search, configured with a loose inlier
        threshold.
    min_improvement : float
        Tiles whose mean row difference is below this are left alone.
    ransac_threshold : float
        Inlier distance for the alignment fit.
    search_multiplier : float
        Factor applied to the transformed disparity extent.
    num_iterations : int
        RANSAC trials.
    seed : int or np.random.Generator, optional
        With an int, each tile draws from its own generator seeded by
        ``(seed, row, col)``, so results do not depend on scheduling.
    diagnostics : DiagnosticsSink, optional
        Receives transforms and match sets.
    """

    def __init__(
        self,
        method: AlignmentMethod,
        finder: FeatureCorrespondenceFinder,
        min_improvement: float = 3.0,
        ransac_threshold: float = 3.0,
        search_multiplier: float = 2.0,
        num_iterations: int = 200,
        seed: Union[None, int, np.random.Generator] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        method = AlignmentMethod(method)
        if method is AlignmentMethod.NONE:
            raise ValidationError("PiecewiseAligner needs an alignment method other than NONE")
        self.method = method
        self.finder = finder
        self.min_improvement = min_improvement
        self.ransac_threshold = ransac_threshold
        self.search_multiplier = search_multiplier
        self.num_iterations = num_iterations
        self.seed = seed
        self.diagnostics = diagnostics or NullDiagnostics()

    @classmethod
    def from_settings(
        cls,
        settings: StereoSettings,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> 'PiecewiseAligner':
        finder = FeatureCorrespondenceFinder(
            method=settings.feature_method,
            ip_per_tile=settings.ip_per_tile,
            inlier_threshold=settings.piecewise_match_threshold,
            num_iterations=100,
            rng=settings.random_seed,
            diagnostics=diagnostics,
        )
        return cls(
            method=settings.alignment_method,
            finder=finder,
            min_improvement=settings.piecewise_min_improvement,
            ransac_threshold=settings.piecewise_ransac_threshold,
            search_multiplier=settings.piecewise_search_multiplier,
            num_iterations=settings.ransac_iterations,
            seed=settings.random_seed,
            diagnostics=diagnostics,
        )

    def _tile_rng(self, tile: Optional[Tile]) -> np.random.Generator:
        if isinstance(self.seed, np.random.Generator):
            return self.seed
        if self.seed is None:
            return np.random.default_rng()
        row, col = tile.index if tile is not None else (0, 0)
        return np.random.default_rng([self.seed, row, col])

    def _identity(self, shape, search_range, avg_delta_y) -> AlignmentResult:
        return AlignmentResult(identity(), identity(), search_range, tuple(shape), False, avg_delta_y)

    def _fit(
        self,
        matches: CorrespondenceSet,
        left_shape: Tuple[int, int],
        right_shape: Tuple[int, int],
        rng: np.random.Generator,
    ) -> Tuple[np.ndarray, np.ndarray, Tuple[int, int]]:
        functor = (HomographyFittingFunctor() if self.method is AlignmentMethod.HOMOGRAPHY
                   else AffineEpipolarFittingFunctor())
        fitter = RobustModelFitter(
            functor,
            num_iterations=self.num_iterations,
            inlier_threshold=self.ransac_threshold,
            min_num_output_inliers=len(matches) // 2,
            rng=rng,
        )
        model = fitter.fit(matches.left, matches.right).model
        if self.method is AlignmentMethod.HOMOGRAPHY:
            return identity(), model, tuple(left_shape)
        left_matrix, right_matrix = model
        return fit_render_frame(left_matrix, right_matrix, left_shape, right_shape)

    def align(
        self,
        left_crop: np.ndarray,
        right_crop: np.ndarray,
        left_mask: Optional[np.ndarray],
        right_mask: Optional[np.ndarray],
        search_range: SearchRange,
        tile: Optional[Tile] = None,
        cell: Optional[CellHandle] = None,
    ) -> AlignmentResult:
        """Fit the alignment of one margin-expanded tile.

        Parameters
        ----------
        left_crop, right_crop : np.ndarray
            Tile crops expanded by the alignment margin.
        left_mask, right_mask : np.ndarray or None
            Validity masks of the crops.
        search_range : SearchRange
            Caller's full-resolution range, returned on fallback.
        tile : Tile, optional
            Tile being aligned; names diagnostics and seeds the generator.
        cell : CellHandle, optional
            Table cell that receives the right-to-left transform.

        Returns
        -------
        AlignmentResult
        """
        label = f"tile_{tile.row}_{tile.col}" if tile is not None else "tile"
        rng = self._tile_rng(tile)
        try:
            matches = self.finder.find(left_crop, right_crop, left_mask, right_mask,
                                       name=label, rng=rng)
        except FittingError as e:
            logger.debug("%s: no usable correspondences (%s); skipping alignment", label, e)
            return self._identity(left_crop.shape, search_range, -1.0)

        avg_delta_y = matches.average_delta_y()
        if avg_delta_y < self.min_improvement:
            logger.debug("%s: avgDeltaY %.3f below %.3f; skipping alignment",
                         label, avg_delta_y, self.min_improvement)
            return self._identity(left_crop.shape, search_range, avg_delta_y)

        try:
            left_matrix, right_matrix, render_shape = self._fit(
                matches, left_crop.shape, right_crop.shape, rng)
        except (FittingError, np.linalg.LinAlgError) as e:
            logger.debug("%s: alignment fit failed (%s); using identity", label, e)
            return self._identity(left_crop.shape, search_range, avg_delta_y)

        verdict = check_transform_pair(left_matrix, right_matrix, matches, avg_delta_y)
        if not verdict.accepted:
            logger.debug("%s: alignment rejected (%s); using identity", label, verdict.reason)
            return self._identity(left_crop.shape, search_range, avg_delta_y)

        tightened = search_range_from_correspondences(
            matches, left_matrix, right_matrix, self.search_multiplier)
        logger.debug(
            "%s: avgDeltaY %.3f -> %.3f, search range %s",
            label, avg_delta_y, verdict.avg_delta_y, tightened,
        )
        if cell is not None:
            cell.set(invert(left_matrix) @ right_matrix)
        self.diagnostics.write_transform(f"{label}-align-L", left_matrix)
        self.diagnostics.write_transform(f"{label}-align-R", right_matrix)
        return AlignmentResult(left_matrix, right_matrix, tightened,
                               tuple(render_shape), True, avg_delta_y)
