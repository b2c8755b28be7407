# -*- coding: utf-8 -*-
"""
IO - Tile-oriented raster sources and writers.

Base classes and in-memory rasters are always available. GeoTIFF support
requires rasterio and lives in ``stereocorr.IO.geotiff``.

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

from stereocorr.IO.base import RasterSource, RasterWriter, WindowedRasterSource
from stereocorr.IO.array import ArrayRasterSource, ArrayRasterWriter

__all__ = [
    'RasterSource',
    'RasterWriter',
    'WindowedRasterSource',
    'ArrayRasterSource',
    'ArrayRasterWriter',
]
