# -*- coding: utf-8 -*-
"""
Pipeline Tests - Seeded tile correlation and the end-to-end run.

Writing the final disparity GeoTIFF requires rasterio; those tests are
skipped if it is unavailable.

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
    import rasterio  # noqa: F401
    _HAS_RASTERIO = True
except ImportError:
    _HAS_RASTERIO = False

try:
    import cv2  # noqa: F401
    _HAS_CV2 = True
except ImportError:
    _HAS_CV2 = False

from stereocorr.alignment.local_homography import LocalHomographyTable
from stereocorr.bbox import BBox, SearchRange
from stereocorr.correlation.factory import create_matcher
from stereocorr.correlator import SeededCorrelator, reconcile_disparity
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import (
    ConfigurationError,
    DegenerateGeometryError,
    MissingInputError,
    ValidationError,
)
from stereocorr.matching.correspondence import CorrespondenceSet, write_match_file
from stereocorr.pipeline import StereoCorrelation
from stereocorr.settings import StereoSettings
from stereocorr.transforms import identity
from stereocorr.vocabulary import AlignmentMethod, SeedMode

requires_rasterio = pytest.mark.skipif(not _HAS_RASTERIO, reason="rasterio not installed")
requires_cv2 = pytest.mark.skipif(not _HAS_CV2, reason="opencv-python-headless not installed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def stereo_pair():
    """Random texture with ``right[y, x + 12] == left[y, x]``, 64 x 96."""
    rng = np.random.default_rng(42)
    base = rng.random((64, 140))
    return base[:, 20:116].copy(), base[:, 8:104].copy()


@pytest.fixture
def settings():
    return StereoSettings(
        seed_mode=SeedMode.DISABLED,
        search_range=(8, -1, 16, 1),
        kernel_size=(7, 7),
        corr_tile_size=32,
        num_threads=2,
    )


@pytest.fixture
def quarter_seed():
    """Seed at a quarter of full resolution implying ``dx = 12``."""
    offsets = np.zeros((16, 24, 2), dtype=np.float32)
    offsets[..., 0] = 3.0
    return DisparityField(offsets, np.ones((16, 24), dtype=bool))


def _translation(dx, dy):
    matrix = identity()
    matrix[0, 2], matrix[1, 2] = dx, dy
    return matrix


def _interior_correct(field, min_col=3, max_col=80):
    """Fraction of interior pixels matched at exactly ``(12, 0)``."""
    inner = field.crop(BBox(min_col, 3, max_col + 1, field.shape[0] - 3))
    return np.mean(inner.valid & (inner.dx == 12) & (inner.dy == 0))


# ---------------------------------------------------------------------------
# reconcile_disparity
# ---------------------------------------------------------------------------

class TestReconcileDisparity:

    def test_identity(self):
        warped = DisparityField.invalid((6, 8))
        warped.offsets[...] = (2.5, -1.0)
        warped.valid[2:, :] = True
        native = reconcile_disparity(warped, identity(), identity(), (6, 8))
        np.testing.assert_array_equal(native.valid, warped.valid)
        np.testing.assert_allclose(native.offsets[warped.valid], warped.offsets[warped.valid])

    def test_translated_left(self):
        warped = DisparityField.invalid((10, 14))
        warped.offsets[..., 0] = 5.0
        warped.valid[...] = True
        native = reconcile_disparity(warped, _translation(-3.0, 0.0), identity(), (10, 10))
        # Native columns 0..2 land left of the render frame.
        assert not native.valid[:, :3].any()
        assert native.valid[:, 3:].all()
        np.testing.assert_allclose(native.dx[:, 3:], 2.0)
        np.testing.assert_allclose(native.dy[:, 3:], 0.0)

    def test_right_transform_inverted(self):
        warped = DisparityField.invalid((8, 8))
        warped.valid[...] = True
        native = reconcile_disparity(warped, identity(), _translation(0.0, 4.0), (8, 8))
        # Zero warped disparity maps back through R^-1, four rows up.
        np.testing.assert_allclose(native.dy, -4.0)


# ---------------------------------------------------------------------------
# SeededCorrelator
# ---------------------------------------------------------------------------

class TestSeededCorrelator:
    """Per-tile search ranges and evaluation."""

    def test_spread_shape_mismatch(self, stereo_pair, settings, quarter_seed):
        left, right = stereo_pair
        with pytest.raises(ConfigurationError, match="equal sizes"):
            SeededCorrelator(left, right, None, None, None, settings, seed=quarter_seed,
                             spread=DisparityField.invalid((4, 4)))

    def test_spread_without_seed(self, stereo_pair, settings):
        left, right = stereo_pair
        with pytest.raises(ConfigurationError, match="without a seed"):
            SeededCorrelator(left, right, None, None, None, settings,
                             spread=DisparityField.invalid((4, 4)),
                             search_range=SearchRange(0, 0, 1, 1))

    def test_needs_seed_or_range(self, stereo_pair, settings):
        left, right = stereo_pair
        with pytest.raises(ConfigurationError, match="either a seed"):
            SeededCorrelator(left, right, None, None, None, settings)
        with pytest.raises(ConfigurationError, match="either a seed"):
            SeededCorrelator(left, right, None, None, None, settings,
                             search_range=SearchRange.empty())

    def test_table_must_match_grid(self, stereo_pair, settings):
        left, right = stereo_pair
        with pytest.raises(ConfigurationError, match="tile grid"):
            SeededCorrelator(left, right, None, None, None, settings,
                             homographies=LocalHomographyTable(3, 3),
                             search_range=SearchRange(8, -1, 16, 1))

    def test_table_cells_claimed(self, stereo_pair, settings):
        left, right = stereo_pair
        table = LocalHomographyTable(2, 3)
        SeededCorrelator(left, right, None, None, None, settings, homographies=table,
                         search_range=SearchRange(8, -1, 16, 1))
        with pytest.raises(ConfigurationError, match="already owned"):
            table.claim(1, 2)

    def test_mask_shape_checked(self, stereo_pair, settings):
        left, right = stereo_pair
        with pytest.raises(ValidationError, match="mask shape"):
            SeededCorrelator(left, right, np.ones((4, 4), dtype=bool), None, None, settings,
                             search_range=SearchRange(8, -1, 16, 1))

    def test_tile_range_from_seed(self, stereo_pair, settings, quarter_seed):
        left, right = stereo_pair
        correlator = SeededCorrelator(left, right, None, None, None, settings, seed=quarter_seed)
        assert correlator.upscale == (4.0, 4.0)
        rng = correlator.tile_search_range(correlator.grid.tile(1, 1))
        assert rng == SearchRange(2.0, -1.0, 4.0, 1.0)

    def test_tile_range_with_spread(self, stereo_pair, settings, quarter_seed):
        left, right = stereo_pair
        spread = DisparityField(np.zeros((16, 24, 2), dtype=np.float32),
                                np.ones((16, 24), dtype=bool))
        spread.offsets[..., 0] = 1.0
        correlator = SeededCorrelator(left, right, None, None, None, settings,
                                      seed=quarter_seed, spread=spread)
        rng = correlator.tile_search_range(correlator.grid.tile(0, 0))
        assert rng == SearchRange(1.0, -1.0, 5.0, 1.0)

    def test_global_range_without_seed(self, stereo_pair, settings):
        left, right = stereo_pair
        correlator = SeededCorrelator(left, right, None, None, None, settings,
                                      search_range=SearchRange(8, -1, 16, 1))
        assert correlator.tile_search_range(correlator.grid.tile(0, 2)) == SearchRange(8, -1, 16, 1)

    def test_seeded_evaluation(self, stereo_pair, settings, quarter_seed):
        left, right = stereo_pair
        matcher = create_matcher(settings)
        correlator = SeededCorrelator(left, right, None, None, matcher, settings,
                                      seed=quarter_seed)
        field = correlator.evaluate(correlator.grid.tile(1, 1))
        assert field.shape == (32, 32)
        # Tile (1, 1) covers rows 32..63 and columns 32..63.
        inner = field.crop(BBox(0, 0, 32, 29))
        assert np.mean(inner.valid & (inner.dx == 12) & (inner.dy == 0)) > 0.98

    def test_invalid_seed_gives_invalid_tile(self, stereo_pair, settings):
        left, right = stereo_pair
        seed = DisparityField.invalid((16, 24))
        correlator = SeededCorrelator(left, right, None, None, None, settings, seed=seed)
        field = correlator.evaluate(correlator.grid.tile(0, 0))
        assert field.num_valid == 0

    def test_range_limit_empties_tile(self, stereo_pair):
        left, right = stereo_pair
        settings = StereoSettings(kernel_size=(7, 7), corr_tile_size=32,
                                  search_range_limit=(20, -1, 30, 1))
        correlator = SeededCorrelator(left, right, None, None, None, settings,
                                      search_range=SearchRange(8, -1, 16, 1))
        assert correlator.evaluate(correlator.grid.tile(0, 0)).num_valid == 0

    def test_read_region(self, stereo_pair, settings):
        left, right = stereo_pair
        correlator = SeededCorrelator(left, right, None, None, create_matcher(settings),
                                      settings, search_range=SearchRange(8, -1, 16, 1))
        field = correlator.read_region(BBox(10, 10, 50, 40))
        assert field.shape == (30, 40)
        assert np.mean(field.valid & (field.dx == 12)) > 0.98


# ---------------------------------------------------------------------------
# StereoCorrelation
# ---------------------------------------------------------------------------

class TestStereoCorrelation:
    """Search range determination and full-resolution correlation."""

    def test_uniform_shift(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, settings, out_prefix=str(tmp_path / "out"))
        field = job.compute_disparity()
        assert field.shape == (64, 96)
        assert field.offsets.dtype == np.float32
        assert _interior_correct(field) > 0.98
        # Borders without full kernel support stay invalid.
        assert not field.valid[:, :3].any()
        assert not field.valid[:3, :].any()
        assert not field.valid[:, 88:].any()

    def test_single_worker_matches_pool(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        pooled = StereoCorrelation(left, right, settings,
                                   out_prefix=str(tmp_path / "a")).compute_disparity()
        serial = StereoCorrelation(left, right, settings.replace(num_threads=1),
                                   out_prefix=str(tmp_path / "b")).compute_disparity()
        np.testing.assert_array_equal(pooled.valid, serial.valid)
        np.testing.assert_array_equal(pooled.offsets, serial.offsets)

    def test_masked_pixels_invalid(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        mask = np.ones(left.shape, dtype=bool)
        mask[20:30, 40:50] = False
        job = StereoCorrelation(left, right, settings, out_prefix=str(tmp_path / "out"),
                                left_mask=mask)
        field = job.compute_disparity()
        assert not field.valid[20:30, 40:50].any()

    def test_processing_window(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, settings.replace(trans_crop_win=(10, 10, 50, 40)),
                                out_prefix=str(tmp_path / "out"))
        field = job.compute_disparity()
        assert field.shape == (30, 40)
        assert np.mean(field.valid & (field.dx == 12)) > 0.98

    def test_processing_window_disjoint(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, settings.replace(trans_crop_win=(500, 500, 600, 600)),
                                out_prefix=str(tmp_path / "out"))
        with pytest.raises(ConfigurationError, match="does not overlap"):
            job.processing_region()

    def test_sgm_tile_too_small(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, settings.replace(correlation_algorithm='sgm'),
                                out_prefix=str(tmp_path / "out"))
        with pytest.raises(ConfigurationError, match="at least 96"):
            job.compute_disparity()

    def test_user_range_shifted_by_left_crop(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right,
                                settings.replace(left_image_crop_win=(4, 2, 90, 60)),
                                out_prefix=str(tmp_path / "out"))
        assert job.left.size() == (86, 58)
        assert job.determine_search_range() == SearchRange(12, 1, 20, 3)

    def test_user_range_limited(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right,
                                settings.replace(search_range_limit=(0, 0, 12, 0)),
                                out_prefix=str(tmp_path / "out"))
        assert job.determine_search_range() == SearchRange(8, 0, 12, 0)

    def test_range_deferred_to_seed(self, stereo_pair, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, StereoSettings(seed_mode=SeedMode.EXTERNAL),
                                out_prefix=str(tmp_path / "out"))
        assert job.determine_search_range() is None

    def test_range_from_match_file(self, stereo_pair, tmp_path):
        left, right = stereo_pair
        rng = np.random.default_rng(3)
        points = rng.uniform(0, 60, size=(200, 2))
        shift = np.column_stack([12.0 + rng.normal(0, 0.3, 200), rng.normal(0, 0.3, 200)])
        path = tmp_path / "pairs.match"
        write_match_file(path, CorrespondenceSet(points, points + shift))
        job = StereoCorrelation(left, right, StereoSettings(seed_mode=SeedMode.DISABLED),
                                out_prefix=str(tmp_path / "out"), match_file=path)
        search_range = job.determine_search_range()
        assert search_range.contains((12, 0))
        assert search_range.width < 10

    def test_requested_match_file_missing(self, stereo_pair, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right, StereoSettings(seed_mode=SeedMode.DISABLED),
                                out_prefix=str(tmp_path / "out"),
                                match_file=tmp_path / "absent.match")
        with pytest.raises(MissingInputError, match="match file"):
            job.determine_search_range()

    def test_no_correspondences(self, stereo_pair, tmp_path):
        left, right = stereo_pair
        path = tmp_path / "empty.match"
        write_match_file(path, CorrespondenceSet.empty())
        job = StereoCorrelation(left, right, StereoSettings(seed_mode=SeedMode.DISABLED),
                                out_prefix=str(tmp_path / "out"), match_file=path)
        with pytest.raises(DegenerateGeometryError):
            job.determine_search_range()

    def test_low_res_only_stops_early(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        job = StereoCorrelation(left, right,
                                settings.replace(compute_low_res_disparity_only=True),
                                out_prefix=str(tmp_path / "out"))
        assert job.run() is None
        assert not (tmp_path / "out-D.tif").exists()

    @requires_rasterio
    def test_run_writes_disparity(self, stereo_pair, settings, tmp_path):
        from stereocorr.IO.geotiff import read_disparity
        left, right = stereo_pair
        job = StereoCorrelation(left, right, settings, out_prefix=str(tmp_path / "run" / "out"))
        output = job.run()
        assert output == tmp_path / "run" / "out-D.tif"
        assert not (tmp_path / "run" / "out-D.partial.tif").exists()
        with rasterio.open(str(output)) as ds:
            assert ds.count == 3
            assert ds.dtypes[0] == 'int32'
        field = read_disparity(output)
        assert _interior_correct(field) > 0.98

    @requires_rasterio
    def test_external_seed_run(self, stereo_pair, tmp_path, quarter_seed):
        from stereocorr.IO.geotiff import read_disparity
        left, right = stereo_pair
        settings = StereoSettings(seed_mode=SeedMode.EXTERNAL, kernel_size=(7, 7),
                                  corr_tile_size=32, num_threads=2)
        prefix = tmp_path / "out"
        job = StereoCorrelation(left, right, settings, out_prefix=str(prefix),
                                left_sub=np.zeros((16, 24)), right_sub=np.zeros((16, 24)),
                                external_seed=quarter_seed)
        output = job.run()
        assert not (tmp_path / "out-D_sub.tif").exists()
        assert _interior_correct(read_disparity(output)) > 0.98


# ---------------------------------------------------------------------------
# Piecewise-aligned tiles
# ---------------------------------------------------------------------------

@requires_cv2
class TestAlignedTileEvaluation:
    """Tiles realigned before matching, then mapped back to native offsets."""

    @pytest.fixture
    def offset_pair(self):
        """Smooth texture where ``right[y + 6, x - 12] == left[y, x]``, 256 x 320."""
        from scipy.ndimage import gaussian_filter
        rng = np.random.default_rng(21)
        base = gaussian_filter(rng.random((300, 400)), 1.5)
        base = (base - base.min()) / (base.max() - base.min()) * 255.0
        return base[20:276, 40:360].copy(), base[14:270, 52:372].copy()

    @pytest.fixture
    def offset_seed(self):
        """Quarter-resolution seed implying ``(-12, 6)``."""
        offsets = np.zeros((64, 80, 2), dtype=np.float32)
        offsets[..., 0] = -3.0
        offsets[..., 1] = 1.5
        return DisparityField(offsets, np.ones((64, 80), dtype=bool))

    def _evaluate(self, offset_pair, offset_seed, method):
        from stereocorr.alignment.piecewise import PiecewiseAligner
        left, right = offset_pair
        settings = StereoSettings(alignment_method=method, kernel_size=(7, 7),
                                  corr_tile_size=256, random_seed=1)
        table = LocalHomographyTable(1, 2)
        correlator = SeededCorrelator(
            left, right, None, None, create_matcher(settings), settings,
            seed=offset_seed, aligner=PiecewiseAligner.from_settings(settings),
            homographies=table,
        )
        field = correlator.evaluate(correlator.grid.tile(0, 0))
        return field, table

    @pytest.mark.parametrize('method', [AlignmentMethod.HOMOGRAPHY,
                                        AlignmentMethod.AFFINE_EPIPOLAR])
    def test_native_disparity_recovered(self, offset_pair, offset_seed, method):
        field, table = self._evaluate(offset_pair, offset_seed, method)
        assert field.shape == (256, 256)
        assert field.valid.mean() > 0.75
        np.testing.assert_allclose(np.median(field.offsets[field.valid], axis=0),
                                   [-12.0, 6.0], atol=0.5)
        assert not np.allclose(table.get(0, 0), np.eye(3))
        # The second tile was never evaluated.
        np.testing.assert_array_equal(table.get(0, 1), np.eye(3))

    def test_homography_cell_maps_right_onto_left(self, offset_pair, offset_seed):
        _, table = self._evaluate(offset_pair, offset_seed, AlignmentMethod.HOMOGRAPHY)
        cell = table.get(0, 0)
        np.testing.assert_allclose(cell[:2, :2], np.eye(2), atol=0.05)
        np.testing.assert_allclose(cell[:2, 2], [12.0, -6.0], atol=0.5)


# ---------------------------------------------------------------------------
# Local homography table reuse
# ---------------------------------------------------------------------------

class TestLocalHomographyReuse:
    """A table left by an earlier run seeds the next one."""

    @pytest.fixture
    def piecewise(self, settings):
        return settings.replace(alignment_method='homography')

    def _saved_table(self, path, rows=2, cols=3):
        table = LocalHomographyTable(rows, cols)
        table.claim(1, 2).set(_translation(4.0, -1.0))
        table.save(path)

    def test_existing_table_loaded(self, stereo_pair, piecewise, tmp_path):
        left, right = stereo_pair
        self._saved_table(tmp_path / "out-local_hom.txt")
        job = StereoCorrelation(left, right, piecewise, out_prefix=str(tmp_path / "out"))
        table = job.local_table()
        assert table.shape == (2, 3)
        np.testing.assert_allclose(table.get(1, 2), _translation(4.0, -1.0))
        np.testing.assert_array_equal(table.get(0, 0), np.eye(3))

    def test_no_table_without_alignment(self, stereo_pair, settings, tmp_path):
        left, right = stereo_pair
        self._saved_table(tmp_path / "out-local_hom.txt")
        job = StereoCorrelation(left, right, settings, out_prefix=str(tmp_path / "out"))
        assert job.local_table() is None

    def test_crop_override_starts_fresh(self, stereo_pair, piecewise, tmp_path):
        left, right = stereo_pair
        self._saved_table(tmp_path / "out-local_hom.txt")
        cropped = piecewise.replace(right_image_crop_win=(0, 0, 96, 64))
        job = StereoCorrelation(left, right, cropped, out_prefix=str(tmp_path / "out"))
        np.testing.assert_array_equal(job.local_table().get(1, 2), np.eye(3))

    def test_mismatched_grid_starts_fresh(self, stereo_pair, piecewise, tmp_path):
        left, right = stereo_pair
        self._saved_table(tmp_path / "out-local_hom.txt", rows=3, cols=3)
        job = StereoCorrelation(left, right, piecewise, out_prefix=str(tmp_path / "out"))
        table = job.local_table()
        assert table.shape == (2, 3)
        np.testing.assert_array_equal(table.get(1, 2), np.eye(3))

    @requires_rasterio
    @requires_cv2
    def test_run_carries_unaligned_cells(self, stereo_pair, piecewise, tmp_path):
        left, right = stereo_pair
        path = tmp_path / "out-local_hom.txt"
        self._saved_table(path)
        skip_alignment = piecewise.replace(piecewise_min_improvement=1000.0)
        job = StereoCorrelation(left, right, skip_alignment, out_prefix=str(tmp_path / "out"))
        job.run()
        # Tiles that are not realigned keep the cell they were given.
        np.testing.assert_allclose(LocalHomographyTable.load(path).get(1, 2),
                                   _translation(4.0, -1.0))
