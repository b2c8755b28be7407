# -*- coding: utf-8 -*-
"""
In-Memory Rasters - NumPy-backed sources and writers.

``ArrayRasterSource`` serves tiles from an array already in memory (for
example a subsampled image). ``ArrayRasterWriter`` assembles written chips
into a ``(bands, rows, cols)`` array.

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
from typing import Optional, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import BBox
from stereocorr.IO.base import RasterSource, RasterWriter
from stereocorr.exceptions import ValidationError


class ArrayRasterSource(RasterSource):
    """Raster source over a 2D array.

    Parameters
    ----------
    array : np.ndarray
        Raster data. Shape (rows, cols).
    nodata : float, optional
        Value marking invalid pixels.
    """

    def __init__(self, array: np.ndarray, nodata: Optional[float] = None) -> None:
        array = np.asarray(array)
        if array.ndim != 2:
            raise ValidationError(f"Expected a 2D array, got shape {array.shape}")
        self.array = array
        self._nodata = nodata

    def size(self) -> Tuple[int, int]:
        return (self.array.shape[1], self.array.shape[0])

    def nodata(self) -> Optional[float]:
        return self._nodata

    def _read_window(self, bbox: BBox) -> np.ndarray:
        return self.array[bbox.slices]


class ArrayRasterWriter(RasterWriter):
    """Collect chips into an in-memory ``(bands, rows, cols)`` array."""

    def __init__(self, bands: int, rows: int, cols: int, dtype=np.float32) -> None:
        self.data = np.zeros((bands, rows, cols), dtype=dtype)
        self._lock = threading.Lock()

    def write_chip(self, data: np.ndarray, row_start: int, col_start: int) -> None:
        _, rows, cols = data.shape
        with self._lock:
            self.data[:, row_start:row_start + rows, col_start:col_start + cols] = data
