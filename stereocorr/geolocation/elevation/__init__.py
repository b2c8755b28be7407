# -*- coding: utf-8 -*-
"""
Elevation Models - Terrain height lookup.

``GeoTIFFDEM`` requires rasterio (and pyproj for projected DEMs).

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

from stereocorr.geolocation.elevation.base import ElevationModel
from stereocorr.geolocation.elevation.constant import ConstantElevation
from stereocorr.geolocation.elevation.geotiff_dem import GeoTIFFDEM

__all__ = [
    'ElevationModel',
    'ConstantElevation',
    'GeoTIFFDEM',
]
