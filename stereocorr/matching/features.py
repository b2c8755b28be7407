# -*- coding: utf-8 -*-
"""
Feature Correspondences - Keypoint matching filtered by robust fitting.

``FeatureCorrespondenceFinder`` detects ORB or SIFT keypoints inside the
valid area of two rasters, matches descriptors with a brute-force k-nearest
neighbor search and Lowe's ratio test, and then discards gross mismatches
with a RANSAC homography at a deliberately loose inlier threshold.

Dependencies
------------
opencv-python-headless

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
from typing import Optional

# Third-party
import numpy as np

try:
    import cv2
except ImportError:
    raise ImportError(
        "FeatureCorrespondenceFinder requires opencv-python-headless. "
        "Install with: pip install opencv-python-headless>=4.5"
    )

# stereocorr internal
from stereocorr.diagnostics import DiagnosticsSink, NullDiagnostics
from stereocorr.exceptions import FittingError, ValidationError
from stereocorr.matching.correspondence import CorrespondenceSet
from stereocorr.matching.fitting import HomographyFittingFunctor
from stereocorr.matching.ransac import RandomSource, RobustModelFitter, make_rng
from stereocorr.vocabulary import FeatureMethod

logger = logging.getLogger(__name__)

# Feature density reference area (pixels per side).
_DENSITY_TILE = 1024
_AUTO_IP_PER_TILE = 2000
_MIN_FEATURES = 500


def _to_uint8(image: np.ndarray, mask: Optional[np.ndarray] = None) -> np.ndarray:
    """Convert a raster to uint8 for OpenCV feature detection.

    The stretch uses only the valid (masked-in, finite) pixels. Invalid
    pixels become 0.

    Parameters
    ----------
    image : np.ndarray
        Input raster. Shape (rows, cols).
    mask : np.ndarray, optional
        Boolean validity mask. Shape (rows, cols).

    Returns
    -------
    np.ndarray
        Single-channel uint8 image.
    """
    img = np.asarray(image, dtype=np.float64)
    valid = np.isfinite(img)
    if mask is not None:
        valid &= mask
    if not np.any(valid):
        return np.zeros(img.shape, dtype=np.uint8)

    vmin, vmax = img[valid].min(), img[valid].max()
    out = np.zeros(img.shape, dtype=np.float64)
    if vmax - vmin > 0:
        out[valid] = (img[valid] - vmin) / (vmax - vmin) * 255.0
    return out.astype(np.uint8)


class FeatureCorrespondenceFinder:
    """Detect and match keypoints between two rasters.

    Parameters
    ----------
    method : FeatureMethod or str
        Keypoint detector, ``'orb'`` or ``'sift'``. Default ORB.
    ip_per_tile : int
        Target keypoints per 1024x1024 area. 0 picks an automatic density.
    inlier_threshold : float
        RANSAC inlier distance for gross-mismatch filtering, in pixels.
    match_ratio : float
        Lowe's ratio test threshold. Default 0.75.
    num_iterations : int
        RANSAC trials. Default 100.
    rng : None, int or np.random.Generator
        Random source for RANSAC.
    diagnostics : DiagnosticsSink, optional
        Receives the raw and filtered match sets.

    Examples
    --------
    >>> finder = FeatureCorrespondenceFinder(inlier_threshold=20.0, rng=0)
    >>> matches = finder.find(left_tile, right_tile)
    >>> matches.offsets.mean(axis=0)
    """

    def __init__(
        self,
        method=FeatureMethod.ORB,
        ip_per_tile: int = 0,
        inlier_threshold: float = 20.0,
        match_ratio: float = 0.75,
        num_iterations: int = 100,
        rng: RandomSource = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        try:
            self.method = FeatureMethod(method)
        except ValueError:
            raise ValidationError(
                f"Unknown feature method '{method}'. "
                f"Choose from: {[m.value for m in FeatureMethod]}"
            ) from None
        if ip_per_tile < 0:
            raise ValidationError(f"ip_per_tile must be >= 0, got {ip_per_tile}")
        self.ip_per_tile = ip_per_tile
        self.inlier_threshold = inlier_threshold
        self.match_ratio = match_ratio
        self.num_iterations = num_iterations
        self.rng = make_rng(rng)
        self.diagnostics = diagnostics or NullDiagnostics()

    def _max_features(self, shape) -> int:
        per_tile = self.ip_per_tile or _AUTO_IP_PER_TILE
        tiles = max(1.0, (shape[0] * shape[1]) / float(_DENSITY_TILE ** 2))
        return max(_MIN_FEATURES, int(round(per_tile * tiles)))

    def _create_detector(self, max_features: int):
        if self.method is FeatureMethod.ORB:
            return cv2.ORB_create(nfeatures=max_features)
        return cv2.SIFT_create(nfeatures=max_features)

    def _match_descriptors(self, desc_left: np.ndarray, desc_right: np.ndarray) -> list:
        """Brute-force kNN matching with Lowe's ratio test."""
        norm_type = cv2.NORM_HAMMING if self.method is FeatureMethod.ORB else cv2.NORM_L2
        bf = cv2.BFMatcher(norm_type)
        raw_matches = bf.knnMatch(desc_left, desc_right, k=2)

        good_matches = []
        for match_pair in raw_matches:
            if len(match_pair) == 2:
                m, n = match_pair
                if m.distance < self.match_ratio * n.distance:
                    good_matches.append(m)
        return good_matches

    def detect_and_match(
        self,
        left: np.ndarray,
        right: np.ndarray,
        left_mask: Optional[np.ndarray] = None,
        right_mask: Optional[np.ndarray] = None,
    ) -> CorrespondenceSet:
        """Ratio-test matches before any geometric filtering."""
        if left.ndim != 2 or right.ndim != 2:
            raise ValidationError(
                f"Expected 2D rasters, got {left.shape} and {right.shape}"
            )
        detector = self._create_detector(self._max_features(left.shape))
        cv_mask_l = None if left_mask is None else left_mask.astype(np.uint8) * 255
        cv_mask_r = None if right_mask is None else right_mask.astype(np.uint8) * 255
        kp_left, desc_left = detector.detectAndCompute(_to_uint8(left, left_mask), cv_mask_l)
        kp_right, desc_right = detector.detectAndCompute(_to_uint8(right, right_mask), cv_mask_r)
        if desc_left is None or desc_right is None or len(kp_right) < 2:
            return CorrespondenceSet.empty()

        matches = self._match_descriptors(desc_left, desc_right)
        if not matches:
            return CorrespondenceSet.empty()
        # OpenCV keypoints are already (x, y).
        pts_left = np.array([kp_left[m.queryIdx].pt for m in matches], dtype=np.float64)
        pts_right = np.array([kp_right[m.trainIdx].pt for m in matches], dtype=np.float64)
        return CorrespondenceSet(pts_left, pts_right)

    def find(
        self,
        left: np.ndarray,
        right: np.ndarray,
        left_mask: Optional[np.ndarray] = None,
        right_mask: Optional[np.ndarray] = None,
        name: Optional[str] = None,
        rng: RandomSource = None,
    ) -> CorrespondenceSet:
        """Find correspondences that survive gross-mismatch filtering.

        Parameters
        ----------
        left, right : np.ndarray
            Rasters. Shape (rows, cols).
        left_mask, right_mask : np.ndarray, optional
            Boolean validity masks.
        name : str, optional
            Diagnostics label.
        rng : None, int or np.random.Generator
            Random source for this call. Defaults to the finder's own.

        Returns
        -------
        CorrespondenceSet
            Tile-local correspondences.

        Raises
        ------
        FittingError
            If no candidate matches are found or RANSAC rejects them all.
        """
        raw = self.detect_and_match(left, right, left_mask, right_mask)
        if name:
            self.diagnostics.write_matches(f"{name}-raw", raw)
        if len(raw) == 0:
            raise FittingError("No interest point matches found")

        fitter = RobustModelFitter(
            HomographyFittingFunctor(),
            num_iterations=self.num_iterations,
            inlier_threshold=self.inlier_threshold,
            min_num_output_inliers=len(raw) // 2,
            rng=self.rng if rng is None else make_rng(rng),
        )
        result = fitter.fit(raw.left, raw.right)
        filtered = raw.subset(result.inlier_indices)
        logger.debug(
            "Kept %d of %d interest point matches", len(filtered), len(raw)
        )
        if name:
            self.diagnostics.write_matches(name, filtered)
        return filtered
