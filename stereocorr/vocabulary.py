# -*- coding: utf-8 -*-
"""
Vocabulary - Canonical enums for stereo correlation settings.

Single source of truth for the controlled vocabularies a correlation run is
configured with: how the low-resolution seed is produced, which per-tile
alignment strategy is used, the matcher algorithm and cost function, image
prefiltering, seed outlier rejection, and the feature detector.

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

from enum import Enum


class SeedMode(Enum):
    """How the low-resolution seed disparity is obtained.

    ``DISABLED`` runs full-resolution correlation bounded only by the global
    search range. ``CORRELATION`` correlates the subsampled images.
    ``TERRAIN`` predicts the seed from a DEM and two camera models.
    ``EXTERNAL`` uses a seed supplied by the caller.
    """

    DISABLED = 0
    CORRELATION = 1
    TERRAIN = 2
    EXTERNAL = 3


class AlignmentMethod(Enum):
    """Per-tile piecewise alignment strategy.

    Tagged variant of the alignment step: ``NONE`` never realigns,
    ``HOMOGRAPHY`` fits a full projective transform of the right tile onto
    the left, ``AFFINE_EPIPOLAR`` fits a restricted pair that makes the
    epipolar lines of both tiles horizontal.
    """

    NONE = "none"
    HOMOGRAPHY = "homography"
    AFFINE_EPIPOLAR = "affineepipolar"


class CorrelationAlgorithm(Enum):
    """Matcher algorithm."""

    WINDOW = "window"
    SGM = "sgm"


class CostFunction(Enum):
    """Per-pixel matching cost used by the window matcher."""

    ABSOLUTE_DIFFERENCE = "absolute_difference"
    SQUARED_DIFFERENCE = "squared_difference"
    CROSS_CORRELATION = "cross_correlation"
    CENSUS_TRANSFORM = "census_transform"
    TERNARY_CENSUS_TRANSFORM = "ternary_census_transform"


class PrefilterMode(Enum):
    """Image prefilter applied before matching."""

    NONE = "none"
    SUBTRACTED_MEAN = "subtracted_mean"
    LOG = "log"


class OutlierRejection(Enum):
    """Outlier rejection rule applied to the correlated seed.

    The two rules are mutually exclusive. ``THRESHOLD`` compares each
    disparity with its neighbors; ``QUANTILE`` drops disparities far outside
    the interquartile range of the whole seed.
    """

    THRESHOLD = "threshold"
    QUANTILE = "quantile"


class FeatureMethod(Enum):
    """OpenCV keypoint detector used for correspondences."""

    ORB = "orb"
    SIFT = "sift"
