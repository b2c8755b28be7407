# -*- coding: utf-8 -*-
"""
stereocorr - Seeded, tile-parallel stereo disparity correlation.

Computes dense disparity between a rectified stereo pair in two stages: a
coarse low-resolution seed that bounds the search, then full-resolution
correlation per output tile, optionally with per-tile piecewise
realignment (homography or affine-epipolar) fitted by RANSAC.

Dependencies
------------
numpy
scipy
opencv-python-headless
rasterio

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

__version__ = "0.1.0"

from stereocorr.bbox import BBox, SearchRange
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import (
    StereoCorrError,
    ValidationError,
    ConfigurationError,
    MissingInputError,
    DegenerateGeometryError,
    FittingError,
    QualityGateError,
)
from stereocorr.settings import StereoSettings
from stereocorr.vocabulary import (
    AlignmentMethod,
    CorrelationAlgorithm,
    CostFunction,
    FeatureMethod,
    OutlierRejection,
    PrefilterMode,
    SeedMode,
)

# The pipeline needs OpenCV; keep the data model importable without it.
try:
    from stereocorr.pipeline import StereoCorrelation
    from stereocorr.correlator import SeededCorrelator
    _PIPELINE_EXPORTS = ['StereoCorrelation', 'SeededCorrelator']
except ImportError:
    _PIPELINE_EXPORTS = []

__all__ = [
    'BBox',
    'SearchRange',
    'DisparityField',
    'StereoCorrError',
    'ValidationError',
    'ConfigurationError',
    'MissingInputError',
    'DegenerateGeometryError',
    'FittingError',
    'QualityGateError',
    'StereoSettings',
    'AlignmentMethod',
    'CorrelationAlgorithm',
    'CostFunction',
    'FeatureMethod',
    'OutlierRejection',
    'PrefilterMode',
    'SeedMode',
] + _PIPELINE_EXPORTS
