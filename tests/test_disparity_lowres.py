# -*- coding: utf-8 -*-
"""
Low-Resolution Stage Tests - Seed policies, outlier rejection, caching and
subsampling.

Tests that write cached seeds require rasterio; subsampling requires
opencv-python-headless. Each is skipped if its library is unavailable.

Dependencies
------------
rasterio
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

from pathlib import Path

import numpy as np
import pytest

try:
    import rasterio  # noqa: F401
    _HAS_RASTERIO = True
except ImportError:
    _HAS_RASTERIO = False

try:
    import cv2  # noqa: F401
    _HAS_CV2 = True
except ImportError:
    _HAS_CV2 = False

from stereocorr.bbox import SearchRange
from stereocorr.disparity.field import DisparityField
from stereocorr.disparity.lowres import (
    LowResDisparityStage,
    seed_paths,
    subsample_image,
    subsample_scale,
)
from stereocorr.exceptions import ConfigurationError, MissingInputError, ValidationError
from stereocorr.geolocation.camera import AffineCameraModel
from stereocorr.geolocation.elevation.constant import ConstantElevation
from stereocorr.IO.geotiff import read_disparity, write_disparity
from stereocorr.settings import StereoSettings
from stereocorr.vocabulary import SeedMode

requires_rasterio = pytest.mark.skipif(not _HAS_RASTERIO, reason="rasterio not installed")
requires_cv2 = pytest.mark.skipif(not _HAS_CV2, reason="opencv-python-headless not installed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sub_pair():
    """Subsampled texture where ``right[y, x + 6] == left[y, x]``."""
    rng = np.random.default_rng(12)
    base = rng.random((48, 100))
    return base[:, 10:90], base[:, 4:84]


@pytest.fixture
def constant_seed():
    offsets = np.zeros((10, 20, 2), dtype=np.float32)
    offsets[..., 0] = 2.0
    offsets[..., 1] = -1.0
    return DisparityField(offsets, np.ones((10, 20), dtype=bool))


@pytest.fixture
def prefix(tmp_path):
    return str(tmp_path / "run" / "out")


def _run(stage, prefix, shape=(10, 20), full_size=(80, 40), **kwargs):
    dummy = np.zeros(shape)
    kwargs.setdefault('search_range', SearchRange(-50, -5, 50, 5))
    return stage.run(dummy, dummy, None, None, full_size, out_prefix=prefix, **kwargs)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:

    def test_seed_paths(self):
        seed, spread = seed_paths("dir/out")
        assert seed == Path("dir/out-D_sub.tif")
        assert spread == Path("dir/out-D_sub_spread.tif")

    def test_subsample_scale(self):
        assert subsample_scale((1000, 1000)) == 1.0
        assert subsample_scale((6000, 6000)) == pytest.approx(0.25)

    @requires_cv2
    def test_subsample_image(self):
        image = np.arange(64 * 48, dtype=np.float64).reshape(48, 64)
        mask = np.ones(image.shape, dtype=bool)
        mask[:, :8] = False
        small, small_mask = subsample_image(image, mask, 0.5)
        assert small.shape == (24, 32)
        assert small.dtype == np.float32
        assert small_mask.dtype == bool
        assert not small_mask[:, :4].any()
        assert small_mask[:, 4:].all()

    @requires_cv2
    def test_subsample_bad_scale(self):
        with pytest.raises(ValidationError, match="scale"):
            subsample_image(np.zeros((4, 4)), None, 1.5)


# ---------------------------------------------------------------------------
# Outlier rejection
# ---------------------------------------------------------------------------

class TestRejectOutliers:

    @pytest.fixture
    def spiky(self):
        offsets = np.zeros((12, 12, 2), dtype=np.float32)
        offsets[..., 0] = 4.0
        offsets[6, 6, 0] = 30.0
        return DisparityField(offsets, np.ones((12, 12), dtype=bool))

    def test_threshold_rule(self, spiky):
        stage = LowResDisparityStage(StereoSettings(outlier_rejection='threshold'))
        out = stage.reject_outliers(spiky, (0.5, 0.5))
        assert not out.valid[6, 6]
        assert out.num_valid == 143

    def test_threshold_rule_blob_area_scaled(self, spiky):
        settings = StereoSettings(outlier_rejection='threshold', corr_blob_filter_area=400)
        # 400 * 0.5 = 200 > 143 remaining pixels.
        out = LowResDisparityStage(settings).reject_outliers(spiky, (0.5, 0.5))
        assert out.num_valid == 0

    def test_quantile_rule(self, spiky):
        settings = StereoSettings(outlier_rejection='quantile', corr_blob_filter_area=10 ** 6)
        out = LowResDisparityStage(settings).reject_outliers(spiky, (0.5, 0.5))
        # The quantile rule does not apply the blob filter.
        assert out.num_valid == 143
        assert not out.valid[6, 6]


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

class TestSeedPolicies:
    """DISABLED, EXTERNAL, TERRAIN and CORRELATION seeding."""

    def test_disabled_passes_range_through(self, prefix):
        stage = LowResDisparityStage(StereoSettings(seed_mode=SeedMode.DISABLED))
        rng = SearchRange(-3, -1, 3, 1)
        result = _run(stage, prefix, search_range=rng)
        assert result.disparity is None
        assert result.spread is None
        assert result.search_range == rng

    def test_external_without_seed(self, prefix):
        # A crop window bypasses the cache, so nothing can stand in for the seed.
        settings = StereoSettings(seed_mode=SeedMode.EXTERNAL, left_image_crop_win=(0, 0, 10, 10))
        with pytest.raises(ConfigurationError, match="External seeding"):
            _run(LowResDisparityStage(settings), prefix)

    def test_spread_mismatch(self, prefix, constant_seed):
        stage = LowResDisparityStage(StereoSettings(seed_mode=SeedMode.EXTERNAL))
        with pytest.raises(ConfigurationError, match="spread shape"):
            _run(stage, prefix, external_seed=constant_seed,
                 external_spread=DisparityField.invalid((5, 5)))

    def test_terrain_needs_models(self, prefix):
        settings = StereoSettings(seed_mode=SeedMode.TERRAIN, left_image_crop_win=(0, 0, 80, 40))
        with pytest.raises(ConfigurationError, match="camera models"):
            _run(LowResDisparityStage(settings), prefix)

    def test_correlation_needs_range(self, prefix):
        settings = StereoSettings(seed_mode=SeedMode.CORRELATION, left_image_crop_win=(0, 0, 80, 40))
        with pytest.raises(ConfigurationError, match="global search range"):
            _run(LowResDisparityStage(settings), prefix, search_range=None)

    @requires_rasterio
    def test_external_seed_scaled_to_full_range(self, prefix, constant_seed):
        stage = LowResDisparityStage(StereoSettings(seed_mode=SeedMode.EXTERNAL))
        result = _run(stage, prefix, external_seed=constant_seed)
        assert result.disparity is constant_seed
        # Seed pixels are 4x coarser than full resolution.
        assert result.search_range == SearchRange(8.0, -4.0, 8.0, -4.0)
        # A seed passed in directly is not cached.
        assert not seed_paths(prefix)[0].exists()

    @requires_rasterio
    def test_range_limit_applied(self, prefix):
        offsets = np.zeros((10, 20, 2), dtype=np.float32)
        offsets[..., 0] = np.arange(20) % 5
        offsets[..., 1] = (np.arange(10) % 3 - 1)[:, np.newaxis]
        seed = DisparityField(offsets, np.ones((10, 20), dtype=bool))
        settings = StereoSettings(seed_mode=SeedMode.EXTERNAL,
                                  search_range_limit=(2, -2, 10, 2))
        result = _run(LowResDisparityStage(settings), prefix, external_seed=seed)
        # Unclipped, the seed implies (0, -4, 16, 4) at full resolution.
        assert result.search_range == SearchRange(2.0, -2.0, 10.0, 2.0)

    @requires_rasterio
    def test_terrain_seed(self, prefix):
        left = AffineCameraModel([[1000.0, 0.0, 0.0], [0.0, -1000.0, 0.0]], [0.0, 100.0])
        right = AffineCameraModel([[1000.0, 0.0, 0.5], [0.0, -1000.0, 0.0]], [3.0, 100.0])
        stage = LowResDisparityStage(StereoSettings(seed_mode=SeedMode.TERRAIN, dem_error=5.0))
        result = _run(stage, prefix, cameras=(left, right), elevation=ConstantElevation(100.0))
        # dx = 0.5 * 100 + 3 = 53 full-resolution pixels, 13.25 seed pixels.
        np.testing.assert_allclose(result.disparity.dx, 13.25, atol=1e-4)
        np.testing.assert_allclose(result.spread.dx, 1.0)
        np.testing.assert_allclose(result.spread.dy, 0.0)
        assert result.search_range.contains((53, 0))
        assert seed_paths(prefix)[1].exists()

    @requires_rasterio
    def test_correlation_seed(self, prefix, sub_pair):
        left, right = sub_pair
        settings = StereoSettings(seed_mode=SeedMode.CORRELATION, kernel_size=(7, 7))
        stage = LowResDisparityStage(settings)
        result = stage.run(left, right, None, None, (160, 96),
                           SearchRange(8, 0, 16, 0), prefix)
        assert result.disparity.shape == left.shape
        assert result.disparity.num_valid > 0.5 * left.size
        assert np.median(result.disparity.dx[result.disparity.valid]) == 6.0
        assert result.search_range.contains((12, 0))

    @requires_rasterio
    def test_piecewise_alignment_creates_table(self, prefix, constant_seed):
        settings = StereoSettings(seed_mode=SeedMode.EXTERNAL, alignment_method='homography',
                                  corr_tile_size=32)
        _run(LowResDisparityStage(settings), prefix, external_seed=constant_seed)
        table = Path(f"{prefix}-local_hom.txt")
        assert table.read_text().splitlines()[0] == "3 2"


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------

@requires_rasterio
class TestSeedCache:
    """Reuse of a previously written seed."""

    def test_cached_seed_reused(self, prefix, constant_seed):
        write_disparity(seed_paths(prefix)[0], constant_seed)
        settings = StereoSettings(seed_mode=SeedMode.CORRELATION)
        again = _run(LowResDisparityStage(settings), prefix)
        np.testing.assert_allclose(again.disparity.offsets, constant_seed.offsets)
        # The spread is optional for correlation seeds.
        assert again.spread is None

    def test_cached_terrain_seed_with_spread(self, prefix, constant_seed):
        seed_path, spread_path = seed_paths(prefix)
        write_disparity(seed_path, constant_seed)
        offsets = np.ones((10, 20, 2), dtype=np.float32)
        write_disparity(spread_path, DisparityField(offsets, np.ones((10, 20), dtype=bool)),
                        dtype=np.int32)
        result = _run(LowResDisparityStage(StereoSettings(seed_mode=SeedMode.TERRAIN)), prefix)
        np.testing.assert_allclose(result.spread.dx, 1.0)
        np.testing.assert_allclose(result.disparity.dx, 2.0)

    @pytest.mark.parametrize('mode', [SeedMode.TERRAIN, SeedMode.EXTERNAL])
    def test_cached_seed_without_spread(self, prefix, constant_seed, mode):
        write_disparity(seed_paths(prefix)[0], constant_seed)
        with pytest.raises(MissingInputError, match="spread"):
            _run(LowResDisparityStage(StereoSettings(seed_mode=mode)), prefix)

    def test_supplied_seed_bypasses_cache(self, prefix, constant_seed):
        stale = DisparityField(np.full((10, 20, 2), 9.0, dtype=np.float32),
                               np.ones((10, 20), dtype=bool))
        write_disparity(seed_paths(prefix)[0], stale)
        settings = StereoSettings(seed_mode=SeedMode.EXTERNAL)
        result = _run(LowResDisparityStage(settings), prefix, external_seed=constant_seed)
        assert result.disparity is constant_seed
        np.testing.assert_allclose(read_disparity(seed_paths(prefix)[0]).dx, 9.0)

    def test_skip_requires_cache(self, prefix):
        settings = StereoSettings(seed_mode=SeedMode.CORRELATION,
                                  skip_low_res_disparity_comp=True)
        with pytest.raises(MissingInputError, match="required"):
            _run(LowResDisparityStage(settings), prefix)

    def test_crop_override_recomputes(self, prefix, constant_seed):
        seed_path, spread_path = seed_paths(prefix)
        write_disparity(seed_path, constant_seed)
        write_disparity(spread_path, constant_seed, dtype=np.int32)
        cropped = StereoSettings(seed_mode=SeedMode.EXTERNAL, left_image_crop_win=(0, 0, 80, 40))
        with pytest.raises(ConfigurationError, match="External seeding"):
            _run(LowResDisparityStage(cropped), prefix)
