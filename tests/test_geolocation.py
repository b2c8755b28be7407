# -*- coding: utf-8 -*-
"""
Geolocation Tests - Camera models, elevation models, triangulation and the
terrain seed predictor.

GeoTIFF DEM tests require rasterio and are skipped if it is unavailable.

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
    import rasterio
    from rasterio.transform import from_origin
    _HAS_RASTERIO = True
except ImportError:
    _HAS_RASTERIO = False

from stereocorr.disparity.dem_seed import DemDisparityPredictor
from stereocorr.exceptions import MissingInputError, ValidationError
from stereocorr.geolocation.camera import AffineCameraModel
from stereocorr.geolocation.elevation.constant import ConstantElevation
from stereocorr.geolocation.triangulation import (
    filter_by_lonlat_and_elevation,
    triangulate,
)
from stereocorr.matching.correspondence import CorrespondenceSet


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def left_camera():
    return AffineCameraModel([[1000.0, 0.0, 0.0], [0.0, -1000.0, 0.0]], [0.0, 1000.0])


@pytest.fixture
def right_camera():
    """Horizontal parallax ``dx = 0.5 * height + 3``."""
    return AffineCameraModel([[1000.0, 0.0, 0.5], [0.0, -1000.0, 0.0]], [3.0, 1000.0])


def _pairs(left_xy, heights):
    left = np.asarray(left_xy, dtype=np.float64)
    right = left + np.column_stack([0.5 * np.asarray(heights) + 3.0, np.zeros(len(left))])
    return CorrespondenceSet(left, right)


# ---------------------------------------------------------------------------
# Camera models
# ---------------------------------------------------------------------------

class TestAffineCameraModel:

    def test_project(self, left_camera):
        np.testing.assert_allclose(left_camera.project([0.1, 0.2, 0.0]), [[100.0, 800.0]])

    def test_back_project_inverts_project(self, right_camera):
        ground = np.array([[0.1, 0.2, 30.0], [0.35, -0.4, 900.0]])
        pixels = right_camera.project(ground)
        np.testing.assert_allclose(right_camera.back_project(pixels, ground[:, 2]), ground)

    def test_scalar_height_broadcast(self, left_camera):
        ground = left_camera.back_project(np.array([[100.0, 800.0], [200.0, 900.0]]), 50.0)
        np.testing.assert_allclose(ground[:, 2], 50.0)
        np.testing.assert_allclose(ground[:, 0], [0.1, 0.2])

    def test_bad_shapes(self):
        with pytest.raises(ValidationError, match="matrix"):
            AffineCameraModel(np.eye(3), [0.0, 0.0])
        with pytest.raises(ValidationError, match="points"):
            AffineCameraModel(np.eye(2, 3), [0.0, 0.0]).project(np.zeros((2, 2)))

    def test_singular_ground_part(self):
        with pytest.raises(ValidationError, match="singular"):
            AffineCameraModel([[1.0, 1.0, 0.0], [2.0, 2.0, 0.0]], [0.0, 0.0])


# ---------------------------------------------------------------------------
# Elevation models
# ---------------------------------------------------------------------------

class TestConstantElevation:

    def test_scalar_query(self):
        height = ConstantElevation(42.0).get_elevation(34.0, -118.0)
        assert isinstance(height, float)
        assert height == 42.0

    def test_array_query(self):
        heights = ConstantElevation(7.0).get_elevation(np.zeros(3), np.ones(3))
        assert heights.shape == (3,)
        np.testing.assert_array_equal(heights, 7.0)


@pytest.mark.skipif(not _HAS_RASTERIO, reason="rasterio not installed")
class TestGeoTIFFDEM:
    """Nearest-neighbor lookup in a geographic DEM."""

    @pytest.fixture
    def dem_path(self, tmp_path):
        data = (np.arange(20)[:, np.newaxis] * 100 + np.arange(20)).astype(np.float32)
        data[0, 0] = -9999.0
        path = tmp_path / "dem.tif"
        with rasterio.open(
            str(path), 'w', driver='GTiff', width=20, height=20, count=1,
            dtype='float32', nodata=-9999.0, transform=from_origin(10.0, 50.0, 0.1, 0.1),
        ) as ds:
            ds.write(data, 1)
        return path

    def test_lookup(self, dem_path):
        from stereocorr.geolocation.elevation.geotiff_dem import GeoTIFFDEM
        with GeoTIFFDEM(dem_path) as dem:
            assert dem.get_elevation(49.5, 10.3) == pytest.approx(503.0)
            heights = dem.get_elevation(np.array([49.9, 48.5]), np.array([10.1, 11.0]))
        np.testing.assert_allclose(heights, [101.0, 1510.0])

    def test_nodata_and_outside(self, dem_path):
        from stereocorr.geolocation.elevation.geotiff_dem import GeoTIFFDEM
        with GeoTIFFDEM(dem_path) as dem:
            assert np.isnan(dem.get_elevation(50.0, 10.0))
            assert np.isnan(dem.get_elevation(49.5, 20.0))

    def test_missing_file(self, tmp_path):
        from stereocorr.geolocation.elevation.geotiff_dem import GeoTIFFDEM
        with pytest.raises(MissingInputError):
            GeoTIFFDEM(tmp_path / "none.tif")


# ---------------------------------------------------------------------------
# Triangulation
# ---------------------------------------------------------------------------

class TestTriangulation:

    def test_height_recovered(self, left_camera, right_camera):
        point, error = triangulate(left_camera, right_camera, (100.0, 200.0), (228.0, 200.0))
        assert point[2] == pytest.approx(250.0, abs=0.01)
        assert point[0] == pytest.approx(0.1, abs=1e-5)
        assert error < 0.01

    def test_no_limits_is_passthrough(self, left_camera, right_camera):
        pairs = _pairs([[100.0, 200.0]], [50.0])
        assert filter_by_lonlat_and_elevation(left_camera, right_camera, pairs) is pairs

    def test_elevation_limit(self, left_camera, right_camera):
        pairs = _pairs([[100.0, 200.0], [300.0, 400.0], [500.0, 600.0]], [50.0, 500.0, 2000.0])
        kept = filter_by_lonlat_and_elevation(
            left_camera, right_camera, pairs, elevation_limit=(0.0, 1000.0))
        assert len(kept) == 2
        np.testing.assert_array_equal(kept.left, pairs.left[:2])

    def test_lon_lat_limit(self, left_camera, right_camera):
        pairs = _pairs([[100.0, 200.0], [500.0, 200.0]], [50.0, 50.0])
        kept = filter_by_lonlat_and_elevation(
            left_camera, right_camera, pairs, lon_lat_limit=(0.0, -10.0, 0.3, 10.0))
        assert len(kept) == 1
        np.testing.assert_array_equal(kept.left, [[100.0, 200.0]])

    def test_scaled_correspondences(self, left_camera, right_camera):
        # Half resolution: full-resolution parallax 28 and 128 (heights 50, 250).
        pairs = CorrespondenceSet(np.array([[50.0, 100.0], [50.0, 100.0]]),
                                  np.array([[64.0, 100.0], [114.0, 100.0]]))
        kept = filter_by_lonlat_and_elevation(
            left_camera, right_camera, pairs, elevation_limit=(0.0, 100.0), scale=0.5)
        assert len(kept) == 1
        np.testing.assert_array_equal(kept.right, [[64.0, 100.0]])


# ---------------------------------------------------------------------------
# Terrain seed
# ---------------------------------------------------------------------------

class TestDemDisparityPredictor:

    def test_seed_and_spread(self, left_camera, right_camera):
        predictor = DemDisparityPredictor(left_camera, right_camera, ConstantElevation(20.5),
                                          dem_error=5.0)
        seed, spread = predictor.predict((75, 100), (400, 300))
        assert seed.shape == (75, 100)
        assert seed.valid.all()
        # Full-resolution dx = 0.5 * 20.5 + 3 = 13.25, a quarter of that per seed pixel.
        np.testing.assert_allclose(seed.dx, 13.25 / 4.0, atol=1e-5)
        np.testing.assert_allclose(seed.dy, 0.0, atol=1e-5)
        np.testing.assert_array_equal(spread.dx, 1.0)
        np.testing.assert_array_equal(spread.dy, 0.0)

    def test_uncovered_pixels_invalid(self, left_camera, right_camera):
        class Island(ConstantElevation):
            def _get_elevation_array(self, lats, lons):
                heights = super()._get_elevation_array(lats, lons)
                heights[lons > 0.205] = np.nan
                return heights

        seed, spread = DemDisparityPredictor(
            left_camera, right_camera, Island(0.0)).predict((10, 40), (400, 100))
        # Seed column c sits at lon c / 100, so columns past 20 have no terrain.
        assert seed.valid[:, :21].all()
        assert not seed.valid[:, 21:].any()
        np.testing.assert_array_equal(spread.valid, seed.valid)

    def test_negative_error(self, left_camera, right_camera):
        with pytest.raises(ValidationError, match="dem_error"):
            DemDisparityPredictor(left_camera, right_camera, ConstantElevation(), dem_error=-1.0)
