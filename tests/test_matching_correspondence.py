# -*- coding: utf-8 -*-
"""
Correspondence Tests - CorrespondenceSet operations and match files.

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

from stereocorr.exceptions import MissingInputError, ValidationError
from stereocorr.matching.correspondence import (
    CorrespondenceSet,
    read_match_file,
    write_match_file,
)


@pytest.fixture
def pairs():
    left = np.array([[10.0, 20.0], [30.0, 40.0], [50.0, 60.0]])
    right = np.array([[12.0, 21.0], [33.0, 39.0], [55.0, 60.5]])
    return CorrespondenceSet(left, right)


class TestCorrespondenceSet:
    """Paired positions."""

    def test_offsets(self, pairs):
        np.testing.assert_allclose(pairs.offsets, [[2, 1], [3, -1], [5, 0.5]])

    def test_shape_mismatch(self):
        with pytest.raises(ValidationError, match="same shape"):
            CorrespondenceSet(np.zeros((3, 2)), np.zeros((2, 2)))

    def test_subset_by_mask(self, pairs):
        sub = pairs.subset(np.array([True, False, True]))
        assert len(sub) == 2
        np.testing.assert_allclose(sub.left[:, 0], [10.0, 50.0])

    def test_translate_only_left(self, pairs):
        moved = pairs.translate((100, 0), (0, 0))
        np.testing.assert_allclose(moved.left[0], [110.0, 20.0])
        np.testing.assert_allclose(moved.right, pairs.right)

    def test_scaled(self, pairs):
        np.testing.assert_allclose(pairs.scaled(0.5).right[1], [16.5, 19.5])

    def test_transformed_one_side(self, pairs):
        shift = np.array([[1, 0, -2], [0, 1, -1], [0, 0, 1]], dtype=np.float64)
        aligned = pairs.transformed(right_matrix=shift)
        np.testing.assert_allclose(aligned.left, pairs.left)
        np.testing.assert_allclose(aligned.right[0], [10.0, 20.0])

    def test_average_delta_y(self, pairs):
        assert pairs.average_delta_y() == pytest.approx((1 + 1 + 0.5) / 3)
        assert CorrespondenceSet.empty().average_delta_y() == -1.0


class TestMatchFile:
    """Binary match file persistence."""

    def test_round_trip(self, tmp_path, pairs):
        path = tmp_path / "sub" / "out-L__R.match"
        write_match_file(path, pairs)
        loaded = read_match_file(path)
        np.testing.assert_array_equal(loaded.left, pairs.left)
        np.testing.assert_array_equal(loaded.right, pairs.right)

    def test_empty_round_trip(self, tmp_path):
        path = tmp_path / "empty.match"
        write_match_file(path, CorrespondenceSet.empty())
        assert len(read_match_file(path)) == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingInputError):
            read_match_file(tmp_path / "nope.match")

    def test_truncated_file(self, tmp_path, pairs):
        path = tmp_path / "bad.match"
        write_match_file(path, pairs)
        data = path.read_bytes()
        path.write_bytes(data[:-8])
        with pytest.raises(ValidationError, match="declares 3 pairs"):
            read_match_file(path)
