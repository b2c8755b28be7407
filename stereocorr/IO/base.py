# -*- coding: utf-8 -*-
"""
Raster I/O Base Classes - Tile-oriented sources and writers.

``RasterSource`` is the read interface the correlator pulls tiles from: a
single-band raster with a size, an optional nodata value, and windowed reads.
``RasterWriter`` is the write interface for multi-band outputs assembled
from tiles. Writers are used concurrently by tile workers and must make
``write_chip`` safe to call from several threads.

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
from typing import Optional, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import BBox
from stereocorr.exceptions import ValidationError


class RasterSource(ABC):
    """Abstract single-band raster read by tiles.

    Notes
    -----
    Implementations should read lazily: only the requested window is
    loaded by ``read_tile``.
    """

    @abstractmethod
    def size(self) -> Tuple[int, int]:
        """Raster size as ``(cols, rows)``."""
        ...

    @abstractmethod
    def nodata(self) -> Optional[float]:
        """Nodata value, or None if every pixel is data."""
        ...

    @abstractmethod
    def _read_window(self, bbox: BBox) -> np.ndarray:
        """Read an in-bounds window as a ``(rows, cols)`` array."""
        ...

    @property
    def bbox(self) -> BBox:
        cols, rows = self.size()
        return BBox(0, 0, cols, rows)

    def read_tile(self, bbox: BBox) -> np.ndarray:
        """Read the pixels of ``bbox``.

        Parameters
        ----------
        bbox : BBox
            Window in raster pixels. Must lie inside the raster.

        Returns
        -------
        np.ndarray
            float64 array of shape ``bbox.shape``.

        Raises
        ------
        ValidationError
            If the window is empty or leaves the raster.
        """
        if bbox.is_empty() or not self.bbox.contains(bbox):
            raise ValidationError(
                f"Window {tuple(bbox)} is empty or outside raster {self.size()}"
            )
        return np.asarray(self._read_window(bbox), dtype=np.float64)

    def valid_mask(self, data: np.ndarray) -> np.ndarray:
        """Validity of pixels read from this source: finite and not nodata."""
        valid = np.isfinite(data)
        nodata = self.nodata()
        if nodata is not None and not np.isnan(nodata):
            valid &= data != nodata
        return valid

    def read_tile_and_mask(self, bbox: BBox) -> Tuple[np.ndarray, np.ndarray]:
        data = self.read_tile(bbox)
        return data, self.valid_mask(data)

    def read_full(self) -> np.ndarray:
        return self.read_tile(self.bbox)

    def close(self) -> None:
        """Release underlying resources."""

    def __enter__(self) -> 'RasterSource':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class WindowedRasterSource(RasterSource):
    """View of a rectangular window of another source.

    Pixel ``(0, 0)`` of the view is pixel ``window.origin`` of the parent.
    """

    def __init__(self, parent: RasterSource, window: BBox) -> None:
        window = window.crop(parent.bbox)
        if window.is_empty():
            raise ValidationError(
                f"Crop window does not overlap the raster {parent.size()}"
            )
        self.parent = parent
        self.window = window

    def size(self) -> Tuple[int, int]:
        return self.window.size

    def nodata(self) -> Optional[float]:
        return self.parent.nodata()

    def _read_window(self, bbox: BBox) -> np.ndarray:
        return self.parent.read_tile(bbox.translate(self.window.min_x, self.window.min_y))

    def close(self) -> None:
        self.parent.close()


class RasterWriter(ABC):
    """Abstract multi-band raster writer fed by tiles."""

    @abstractmethod
    def write_chip(self, data: np.ndarray, row_start: int, col_start: int) -> None:
        """Write a ``(bands, rows, cols)`` chip at ``(row_start, col_start)``."""
        ...

    def close(self) -> None:
        """Flush and release underlying resources."""

    def __enter__(self) -> 'RasterWriter':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
