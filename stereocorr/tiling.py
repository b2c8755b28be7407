# -*- coding: utf-8 -*-
"""
Tiling - Output tile grid for tile-parallel correlation.

``TileGrid`` partitions the left image into non-overlapping square tiles,
row-major from the top-left. Edge tiles are clipped to the image rather than
padded. Each ``Tile`` remembers its grid index, which addresses its cell in
the local homography table.

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
from typing import Iterator, List, NamedTuple, Optional, Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import BBox


class Tile(NamedTuple):
    """A nominal output tile.

    Attributes
    ----------
    bbox : BBox
        Nominal extent in left-image pixels.
    row : int
        Tile row in the grid.
    col : int
        Tile column in the grid.
    """

    bbox: BBox
    row: int
    col: int

    @property
    def index(self) -> Tuple[int, int]:
        return (self.row, self.col)


class TileGrid:
    """Non-overlapping tiles covering an image.

    Parameters
    ----------
    width : int
        Image width (columns).
    height : int
        Image height (rows).
    tile_size : int
        Tile edge length in pixels.

    Raises
    ------
    ValueError
        If any dimension is not positive.

    Examples
    --------
    >>> grid = TileGrid(width=2500, height=1000, tile_size=1024)
    >>> grid.shape
    (1, 3)
    >>> grid.tile(0, 2).bbox
    BBox(min_x=2048, min_y=0, max_x=2500, max_y=1000)
    """

    def __init__(self, width: int, height: int, tile_size: int) -> None:
        if width <= 0 or height <= 0 or tile_size <= 0:
            raise ValueError(
                f"width, height and tile_size must be positive, got "
                f"width={width}, height={height}, tile_size={tile_size}"
            )
        self._width = int(width)
        self._height = int(height)
        self._tile_size = int(tile_size)
        self._n_rows = int(np.ceil(self._height / self._tile_size))
        self._n_cols = int(np.ceil(self._width / self._tile_size))

    @property
    def tile_size(self) -> int:
        return self._tile_size

    @property
    def shape(self) -> Tuple[int, int]:
        """Grid dimensions ``(tile_rows, tile_cols)``."""
        return (self._n_rows, self._n_cols)

    @property
    def image_bbox(self) -> BBox:
        return BBox.from_size(self._width, self._height)

    def tile(self, row: int, col: int) -> Tile:
        if not (0 <= row < self._n_rows and 0 <= col < self._n_cols):
            raise IndexError(
                f"Tile ({row}, {col}) outside grid of shape {self.shape}"
            )
        ts = self._tile_size
        box = BBox(col * ts, row * ts, (col + 1) * ts, (row + 1) * ts)
        return Tile(box.crop(self.image_bbox), row, col)

    def tiles(self, window: Optional[BBox] = None) -> List[Tile]:
        """All tiles, row-major, optionally only those touching ``window``."""
        return list(self.iter_tiles(window))

    def iter_tiles(self, window: Optional[BBox] = None) -> Iterator[Tile]:
        for row in range(self._n_rows):
            for col in range(self._n_cols):
                tile = self.tile(row, col)
                if window is not None and tile.bbox.crop(window).is_empty():
                    continue
                yield tile

    def tiles_for_region(self, region: BBox) -> List[Tile]:
        """Tiles intersecting ``region``, used to serve pull requests."""
        return self.tiles(window=region)

    def __len__(self) -> int:
        return self._n_rows * self._n_cols

    def __repr__(self) -> str:
        return (
            f"TileGrid(width={self._width}, height={self._height}, "
            f"tile_size={self._tile_size})"
        )
