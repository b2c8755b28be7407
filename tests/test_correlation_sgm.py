# -*- coding: utf-8 -*-
"""
SGM Tests - Semi-global matching through OpenCV.

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

import numpy as np
import pytest

try:
    import cv2  # noqa: F401
    _HAS_CV2 = True
except ImportError:
    _HAS_CV2 = False

pytestmark = pytest.mark.skipif(not _HAS_CV2, reason="opencv-python-headless not installed")

from stereocorr.bbox import SearchRange
from stereocorr.exceptions import ValidationError


@pytest.fixture
def sgm_pair():
    """Smoothed texture where ``right[y, x - 8] == left[y, x]``."""
    from scipy.ndimage import gaussian_filter
    rng = np.random.default_rng(7)
    base = gaussian_filter(rng.random((64, 180)), 1.0)
    left = base[:, 20:148]
    right = base[:, 28:156]
    return left, right


class TestSemiGlobalMatcher:
    """Horizontal semi-global matching."""

    def test_recovers_negative_shift(self, sgm_pair):
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        left, right = sgm_pair
        field = SemiGlobalMatcher(block_size=5).match(
            left, right, None, None, SearchRange(-12, 0, -4, 0))
        assert field.shape == left.shape
        assert field.num_valid > 0.4 * left.size
        assert np.median(field.dx[field.valid]) == pytest.approx(-8.0, abs=0.5)
        assert np.all(field.dy == 0)

    def test_output_within_range(self, sgm_pair):
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        left, right = sgm_pair
        field = SemiGlobalMatcher(block_size=5).match(
            left, right, None, None, SearchRange(-12, 0, -4, 0))
        assert field.dx[field.valid].min() >= -12
        assert field.dx[field.valid].max() <= -4

    def test_vertical_range_must_contain_zero(self, sgm_pair):
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        left, right = sgm_pair
        with pytest.raises(ValidationError, match="horizontally"):
            SemiGlobalMatcher().match(left, right, None, None, SearchRange(-12, 1, -4, 3))

    def test_penalty_defaults(self):
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        matcher = SemiGlobalMatcher(block_size=15)
        assert matcher.block_size == 11
        assert matcher.p1 == 8 * 121
        assert matcher.p2 == 32 * 121
        assert matcher.produces_float

    def test_bad_penalties(self):
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        with pytest.raises(ValidationError, match="must exceed"):
            SemiGlobalMatcher(p1=100, p2=50)
