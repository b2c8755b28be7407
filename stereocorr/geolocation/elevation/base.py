# -*- coding: utf-8 -*-
"""
Elevation Model Base Class - Abstract interface for terrain elevation lookup.

Concrete implementations handle different elevation sources (constant
height, GeoTIFF DEM). The public ``get_elevation`` method accepts scalars
or arrays and dispatches to one vectorized method.

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
from abc import ABC, abstractmethod
from typing import Union

# Third-party
import numpy as np


def _is_scalar(val) -> bool:
    if isinstance(val, np.ndarray):
        return val.ndim == 0
    return isinstance(val, (int, float, np.integer, np.floating))


class ElevationModel(ABC):
    """Abstract base class for terrain elevation lookup.

    Notes
    -----
    Heights are returned as stored by the source, in meters. Points outside
    coverage are NaN.
    """

    @abstractmethod
    def _get_elevation_array(self, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
        """Look up heights for ``(N,)`` arrays of latitudes and longitudes.

        Returns
        -------
        np.ndarray
            Heights in meters. Shape ``(N,)``. NaN outside coverage.
        """
        ...

    def get_elevation(
        self,
        lat: Union[float, np.ndarray],
        lon: Union[float, np.ndarray],
    ) -> Union[float, np.ndarray]:
        """Query terrain height at one or more locations.

        Parameters
        ----------
        lat, lon : float or np.ndarray
            Latitude(s) and longitude(s) in degrees.

        Returns
        -------
        float
            When scalar inputs are given.
        np.ndarray
            Shape ``(N,)`` otherwise.

        Examples
        --------
        >>> heights = elev.get_elevation(np.array([34.0, 35.0]),
        ...                              np.array([-118.0, -117.0]))
        """
        lats = np.atleast_1d(np.asarray(lat, dtype=np.float64))
        lons = np.atleast_1d(np.asarray(lon, dtype=np.float64))
        heights = self._get_elevation_array(lats, lons)
        if _is_scalar(lat) and _is_scalar(lon):
            return float(heights[0])
        return heights

    def close(self) -> None:
        """Release underlying resources."""

    def __enter__(self) -> 'ElevationModel':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
