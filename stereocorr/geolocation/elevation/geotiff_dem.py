# -*- coding: utf-8 -*-
"""
GeoTIFF DEM Elevation Model - Terrain elevation lookup from a single GeoTIFF.

Reads a GeoTIFF DEM with rasterio. Geographic (EPSG:4326) and projected
CRSs are supported; for a projected DEM, lat/lon queries are reprojected
with pyproj before sampling.

Dependencies
------------
rasterio
pyproj (projected DEMs only)

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
import threading
from pathlib import Path
from typing import Union

# Third-party
import numpy as np

try:
    import rasterio
    _HAS_RASTERIO = True
except ImportError:
    _HAS_RASTERIO = False

# stereocorr internal
from stereocorr.exceptions import MissingInputError
from stereocorr.geolocation.elevation.base import ElevationModel


class GeoTIFFDEM(ElevationModel):
    """Elevation model backed by a single GeoTIFF DEM file.

    The first band is read once, on the first query, and sampled with
    nearest-neighbor lookup afterwards.

    Parameters
    ----------
    dem_path : str or Path
        Path to the GeoTIFF DEM file.

    Raises
    ------
    ImportError
        If rasterio is missing, or pyproj is missing for a projected DEM.
    MissingInputError
        If ``dem_path`` does not exist.

    Examples
    --------
    >>> with GeoTIFFDEM('/data/srtm_34_04.tif') as elev:
    ...     height = elev.get_elevation(34.05, -118.25)
    """

    def __init__(self, dem_path: Union[str, Path]) -> None:
        if not _HAS_RASTERIO:
            raise ImportError(
                "rasterio is required for GeoTIFF DEM lookup. "
                "Install with: pip install rasterio"
            )
        dem_path = Path(dem_path)
        if not dem_path.exists():
            raise MissingInputError(f"GeoTIFF DEM file does not exist: {dem_path}")
        self.dem_path = dem_path

        self._dataset = rasterio.open(str(dem_path))
        self._inv_transform = ~self._dataset.transform
        self._nrows = self._dataset.height
        self._ncols = self._dataset.width
        self._nodata = self._dataset.nodata
        self._data = None
        self._lock = threading.Lock()

        self._transformer = None
        crs = self._dataset.crs
        if crs is not None and not crs.is_geographic:
            try:
                import pyproj
            except ImportError:
                raise ImportError(
                    "GeoTIFFDEM with projected CRS requires pyproj. "
                    "Install with: pip install pyproj"
                )
            self._transformer = pyproj.Transformer.from_crs(
                'EPSG:4326', crs, always_xy=True
            )

    def close(self) -> None:
        """Close the underlying rasterio dataset."""
        ds = getattr(self, '_dataset', None)
        if ds is not None and not ds.closed:
            ds.close()

    def _band(self) -> np.ndarray:
        with self._lock:
            if self._data is None:
                self._data = self._dataset.read(1).astype(np.float64)
            return self._data

    def _get_elevation_array(self, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
        heights = np.full(lats.shape[0], np.nan, dtype=np.float64)

        if self._transformer is not None:
            xs, ys = self._transformer.transform(lons, lats)
        else:
            xs, ys = lons, lats

        cols, rows = self._inv_transform * (np.asarray(xs), np.asarray(ys))
        col_idx = np.round(np.asarray(cols, dtype=np.float64)).astype(np.intp)
        row_idx = np.round(np.asarray(rows, dtype=np.float64)).astype(np.intp)
        valid = (
            (row_idx >= 0) & (row_idx < self._nrows)
            & (col_idx >= 0) & (col_idx < self._ncols)
        )
        if not np.any(valid):
            return heights

        sampled = self._band()[row_idx[valid], col_idx[valid]].copy()
        if self._nodata is not None:
            sampled[np.isclose(sampled, float(self._nodata), atol=0.5)] = np.nan
        heights[valid] = sampled
        return heights
