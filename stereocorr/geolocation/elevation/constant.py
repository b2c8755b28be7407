# -*- coding: utf-8 -*-
"""
Constant Elevation Model - Returns a fixed height for all locations.

Useful for flat-terrain scenes and for testing the terrain seed.

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

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.geolocation.elevation.base import ElevationModel


class ConstantElevation(ElevationModel):
    """Elevation model that returns a fixed height everywhere.

    Parameters
    ----------
    height : float, optional
        Height in meters. Default is 0.0.

    Examples
    --------
    >>> elev = ConstantElevation(height=100.0)
    >>> elev.get_elevation(34.0, -118.0)
    100.0
    """

    def __init__(self, height: float = 0.0) -> None:
        self._height = float(height)

    def _get_elevation_array(self, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
        return np.full(lats.shape, self._height, dtype=np.float64)
