# -*- coding: utf-8 -*-
"""
GeoTIFF I/O - Windowed raster reads and tile-assembled disparity writes.

``GeoTIFFRasterSource`` reads one band of a GeoTIFF by windows.
``GeoTIFFWriter`` creates a multi-band GeoTIFF and accepts chips from
concurrent tile workers. ``write_disparity`` and ``read_disparity`` store a
``DisparityField`` as three bands ``(dx, dy, valid)``.

GDAL dataset handles are not thread-safe, so every read and write on a
shared handle is serialized by a per-object lock.

Dependencies
------------
rasterio

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
import logging
import threading
from pathlib import Path
from typing import Optional, Tuple, Union

# Third-party
import numpy as np

try:
    import rasterio
    from rasterio.errors import RasterioError
    from rasterio.windows import Window
    _HAS_RASTERIO = True
except ImportError:
    _HAS_RASTERIO = False

# stereocorr internal
from stereocorr.bbox import BBox
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import MissingInputError, ValidationError
from stereocorr.IO.base import RasterSource, RasterWriter

logger = logging.getLogger(__name__)

_BLOCK_SIZE = 256


def _require_rasterio() -> None:
    if not _HAS_RASTERIO:
        raise ImportError(
            "rasterio is required for GeoTIFF I/O. "
            "Install with: pip install rasterio"
        )


class GeoTIFFRasterSource(RasterSource):
    """Read one band of a GeoTIFF by windows.

    Parameters
    ----------
    filepath : str or Path
        Path to the GeoTIFF file.
    band : int
        0-based band index.

    Raises
    ------
    ImportError
        If rasterio is not installed.
    MissingInputError
        If the file does not exist.
    ValidationError
        If the file cannot be opened or lacks the band.

    Examples
    --------
    >>> with GeoTIFFRasterSource('left.tif') as src:
    ...     chip = src.read_tile(BBox(0, 0, 512, 512))
    """

    def __init__(self, filepath: Union[str, Path], band: int = 0) -> None:
        _require_rasterio()
        self.filepath = Path(filepath)
        if not self.filepath.exists():
            raise MissingInputError(f"Raster not found: {self.filepath}")
        try:
            self.dataset = rasterio.open(str(self.filepath))
        except Exception as e:
            raise ValidationError(f"Failed to open GeoTIFF {self.filepath}: {e}") from e
        if not 0 <= band < self.dataset.count:
            self.dataset.close()
            raise ValidationError(
                f"{self.filepath} has {self.dataset.count} band(s), band {band} requested"
            )
        self.band = band
        self._lock = threading.Lock()

    def size(self) -> Tuple[int, int]:
        return (self.dataset.width, self.dataset.height)

    def nodata(self) -> Optional[float]:
        nodata = self.dataset.nodata
        return None if nodata is None else float(nodata)

    def _read_window(self, bbox: BBox) -> np.ndarray:
        window = Window(bbox.min_x, bbox.min_y, bbox.width, bbox.height)
        with self._lock:
            return self.dataset.read(self.band + 1, window=window)

    def close(self) -> None:
        """Close the rasterio dataset."""
        if getattr(self, 'dataset', None) is not None:
            self.dataset.close()
            self.dataset = None


class GeoTIFFWriter(RasterWriter):
    """Create a multi-band GeoTIFF filled chip by chip.

    Parameters
    ----------
    filepath : str or Path
        Output path. Parent directories are created.
    width, height : int
        Raster size in pixels.
    bands : int
        Number of bands.
    dtype : str or np.dtype
        Pixel type of every band.
    nodata : float, optional
        Nodata value recorded in the file.
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        width: int,
        height: int,
        bands: int,
        dtype=np.float32,
        nodata: Optional[float] = None,
    ) -> None:
        _require_rasterio()
        self.filepath = Path(filepath)
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        self.dtype = np.dtype(dtype)
        profile = dict(
            driver='GTiff',
            width=int(width),
            height=int(height),
            count=int(bands),
            dtype=self.dtype.name,
            nodata=nodata,
        )
        if width >= _BLOCK_SIZE and height >= _BLOCK_SIZE:
            profile.update(tiled=True, blockxsize=_BLOCK_SIZE, blockysize=_BLOCK_SIZE)
        self.dataset = rasterio.open(str(self.filepath), 'w', **profile)
        self._lock = threading.Lock()

    def write_chip(self, data: np.ndarray, row_start: int, col_start: int) -> None:
        """Write ``(bands, rows, cols)`` data with its top-left at ``(row_start, col_start)``."""
        data = np.asarray(data)
        if data.ndim == 2:
            data = data[np.newaxis]
        window = Window(col_start, row_start, data.shape[2], data.shape[1])
        with self._lock:
            self.dataset.write(data.astype(self.dtype, copy=False), window=window)

    def close(self) -> None:
        if getattr(self, 'dataset', None) is not None:
            with self._lock:
                self.dataset.close()
                self.dataset = None
            logger.debug("Closed %s", self.filepath)


def write_raster(
    filepath: Union[str, Path],
    data: np.ndarray,
    nodata: Optional[float] = None,
) -> None:
    """Write a ``(rows, cols)`` or ``(bands, rows, cols)`` array to a GeoTIFF."""
    data = np.asarray(data)
    if data.ndim == 2:
        data = data[np.newaxis]
    if data.ndim != 3:
        raise ValidationError(f"Expected a 2D or 3D array, got shape {data.shape}")
    with GeoTIFFWriter(filepath, data.shape[2], data.shape[1], data.shape[0],
                       dtype=data.dtype, nodata=nodata) as writer:
        writer.write_chip(data, 0, 0)


def write_disparity(
    filepath: Union[str, Path],
    field: DisparityField,
    dtype=np.float32,
) -> None:
    """Store a disparity field as a 3-band ``(dx, dy, valid)`` GeoTIFF."""
    write_raster(filepath, field.to_bands(dtype))
    logger.info("Wrote %s", filepath)


def read_disparity(filepath: Union[str, Path]) -> DisparityField:
    """Load a disparity field written by ``write_disparity``.

    Raises
    ------
    MissingInputError
        If the file does not exist.
    ValidationError
        If the file is not a 3-band disparity raster.
    """
    _require_rasterio()
    filepath = Path(filepath)
    if not filepath.exists():
        raise MissingInputError(f"Disparity raster not found: {filepath}")
    try:
        with rasterio.open(str(filepath)) as ds:
            bands = ds.read()
    except RasterioError as e:
        raise ValidationError(f"Unreadable disparity raster {filepath}: {e}") from e
    return DisparityField.from_bands(bands)
