# -*- coding: utf-8 -*-
"""
Box Tests - Unit tests for BBox, SearchRange and TileGrid.

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

from stereocorr.bbox import BBox, SearchRange
from stereocorr.tiling import TileGrid


# ---------------------------------------------------------------------------
# BBox
# ---------------------------------------------------------------------------

class TestBBox:
    """Half-open pixel rectangles."""

    def test_size_and_shape(self):
        box = BBox(2, 3, 12, 8)
        assert box.size == (10, 5)
        assert box.shape == (5, 10)
        assert box.origin == (2, 3)

    def test_slices_index_rows_then_cols(self):
        image = np.arange(100).reshape(10, 10)
        chip = image[BBox(2, 3, 5, 4).slices]
        np.testing.assert_array_equal(chip, [[32, 33, 34]])

    def test_expand_and_crop(self):
        box = BBox(0, 0, 10, 10).expand(3)
        assert box == BBox(-3, -3, 13, 13)
        assert box.crop(BBox(0, 0, 8, 20)) == BBox(0, 0, 8, 13)

    def test_disjoint_crop_is_empty(self):
        assert BBox(0, 0, 5, 5).crop(BBox(10, 10, 20, 20)).is_empty()

    def test_intersect_matches_crop(self):
        a, b = BBox(0, 0, 10, 10), BBox(5, 2, 15, 7)
        assert a.intersect(b) == a.crop(b) == BBox(5, 2, 10, 7)

    def test_relative_to(self):
        assert BBox(12, 14, 20, 30).relative_to(BBox(10, 10, 40, 40)) == BBox(2, 4, 10, 20)

    def test_contains(self):
        outer = BBox(0, 0, 10, 10)
        assert outer.contains(BBox(2, 2, 10, 10))
        assert not outer.contains(BBox(2, 2, 11, 10))


# ---------------------------------------------------------------------------
# SearchRange
# ---------------------------------------------------------------------------

class TestSearchRange:
    """Closed disparity ranges."""

    def test_empty_is_grow_identity(self):
        rng = SearchRange(-3, -1, 4, 2)
        assert SearchRange.empty().grow(rng) == rng
        assert rng.grow(SearchRange.empty()) == rng

    def test_grow_with_point(self):
        rng = SearchRange(0, 0, 0, 0).grow((5, -2))
        assert rng == SearchRange(0, -2, 5, 0)

    def test_crop_ignores_empty_limit(self):
        rng = SearchRange(-10, -5, 10, 5)
        assert rng.crop(SearchRange.empty()) == rng
        assert rng.crop(None) == rng
        assert rng.crop(SearchRange(-4, -8, 20, 2)) == SearchRange(-4, -5, 10, 2)

    def test_scale_floors_min_and_ceils_max(self):
        rng = SearchRange(-1.2, -0.5, 2.1, 0.5).scale(4.0)
        assert rng == SearchRange(-5.0, -2.0, 9.0, 2.0)

    def test_scale_per_axis(self):
        rng = SearchRange(-2, -2, 2, 2).scale((0.5, 0.25))
        assert rng == SearchRange(-1.0, -1.0, 1.0, 1.0)

    def test_grow_to_int(self):
        assert SearchRange(-0.5, 0.2, 3.1, 3.0).grow_to_int() == SearchRange(-1, 0, 4, 3)

    def test_inflate_about_center(self):
        rng = SearchRange(-4.5, -2.7, 4.5, 2.7).inflate(2.0)
        np.testing.assert_allclose(rng, (-9.0, -5.4, 9.0, 5.4))
        off_center = SearchRange(0, 0, 2, 2).inflate(3.0)
        assert off_center == SearchRange(-2, -2, 4, 4)

    def test_from_offsets_bounds_points(self):
        offsets = np.array([[1.0, -2.0], [-3.0, 0.5], [2.0, 1.0]])
        assert SearchRange.from_offsets(offsets) == SearchRange(-3.0, -2.0, 2.0, 1.0)
        assert SearchRange.from_offsets(np.empty((0, 2))).is_empty()

    def test_contains_point_and_range(self):
        rng = SearchRange(-2, -2, 2, 2)
        assert rng.contains((0, 2))
        assert not rng.contains((3, 0))
        assert rng.contains(SearchRange(-1, -1, 1, 1))
        assert not SearchRange.empty().contains((0, 0))

    def test_coerce_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="4 values"):
            SearchRange.coerce((1, 2, 3))


# ---------------------------------------------------------------------------
# TileGrid
# ---------------------------------------------------------------------------

class TestTileGrid:
    """Tile enumeration."""

    def test_edge_tiles_are_clipped(self):
        grid = TileGrid(width=2500, height=1000, tile_size=1024)
        assert grid.shape == (1, 3)
        assert grid.tile(0, 2).bbox == BBox(2048, 0, 2500, 1000)

    def test_tiles_cover_image_once(self):
        grid = TileGrid(width=100, height=70, tile_size=32)
        cover = np.zeros((70, 100), dtype=int)
        for tile in grid.iter_tiles():
            cover[tile.bbox.slices] += 1
        assert np.all(cover == 1)
        assert len(grid) == 12

    def test_window_restricts_tiles(self):
        grid = TileGrid(width=128, height=128, tile_size=32)
        tiles = grid.tiles(window=BBox(40, 40, 70, 60))
        assert [t.index for t in tiles] == [(1, 1), (1, 2)]

    def test_out_of_range_tile(self):
        with pytest.raises(IndexError):
            TileGrid(64, 64, 32).tile(2, 0)

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError, match="positive"):
            TileGrid(0, 10, 16)
