# -*- coding: utf-8 -*-
"""
Local Homography Table - Per-tile alignment transforms shared across workers.

The table is a grid of 3x3 matrices indexed by tile ``(row, col)``. Cell
``(r, c)`` holds the transform that maps the right crop of tile ``(r, c)``
into its left crop frame; identity means the tile was not realigned.

It is the only mutable state shared by tile workers. Ownership is
partitioned up front: ``claim`` hands out one ``CellHandle`` per cell, and
only a handle can write its cell. Table-wide operations (claims, snapshots,
persistence) hold the table lock.

The text format is a ``"cols rows"`` header followed by one line of nine
values per cell, columns outer and rows inner.

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
from typing import Dict, Iterable, Tuple, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import ConfigurationError, MissingInputError, ValidationError

logger = logging.getLogger(__name__)


class CellHandle:
    """Exclusive write access to one table cell."""

    __slots__ = ('_table', 'row', 'col')

    def __init__(self, table: 'LocalHomographyTable', row: int, col: int) -> None:
        self._table = table
        self.row = row
        self.col = col

    def get(self) -> np.ndarray:
        return self._table.get(self.row, self.col)

    def set(self, matrix: np.ndarray) -> None:
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (3, 3):
            raise ValidationError(f"Expected a 3x3 matrix, got {matrix.shape}")
        self._table._cells[self.row, self.col] = matrix

    def __repr__(self) -> str:
        return f"CellHandle(row={self.row}, col={self.col})"


class LocalHomographyTable:
    """Grid of per-tile 3x3 transforms, initialized to identity.

    Parameters
    ----------
    rows, cols : int
        Tile grid dimensions.
    """

    def __init__(self, rows: int, cols: int) -> None:
        if rows <= 0 or cols <= 0:
            raise ValidationError(f"Table dimensions must be positive, got {rows}x{cols}")
        self._cells = np.tile(np.eye(3), (rows, cols, 1, 1))
        self._claimed = np.zeros((rows, cols), dtype=bool)
        self._lock = threading.Lock()

    @property
    def shape(self) -> Tuple[int, int]:
        return self._cells.shape[:2]

    def get(self, row: int, col: int) -> np.ndarray:
        return self._cells[row, col].copy()

    def claim(self, row: int, col: int) -> CellHandle:
        """Take exclusive ownership of a cell.

        Raises
        ------
        ConfigurationError
            If the cell was already claimed.
        """
        with self._lock:
            if self._claimed[row, col]:
                raise ConfigurationError(f"Table cell ({row}, {col}) is already owned")
            self._claimed[row, col] = True
        return CellHandle(self, row, col)

    def claim_all(self, indices: Iterable[Tuple[int, int]]) -> Dict[Tuple[int, int], CellHandle]:
        """Claim the cells of a whole tile assignment."""
        return {(r, c): self.claim(r, c) for r, c in indices}

    def snapshot(self) -> np.ndarray:
        """Copy of all cells, shape (rows, cols, 3, 3)."""
        with self._lock:
            return self._cells.copy()

    def save(self, filepath: Union[str, Path]) -> None:
        cells = self.snapshot()
        rows, cols = cells.shape[:2]
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            f.write(f"{cols} {rows}\n")
            for col in range(cols):
                for row in range(rows):
                    f.write(' '.join(f"{v:.18g}" for v in cells[row, col].ravel()) + '\n')
        logger.info("Wrote local homographies to %s", filepath)

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'LocalHomographyTable':
        """Read a table written by ``save``.

        Raises
        ------
        MissingInputError
            If the file does not exist.
        ValidationError
            If the file is malformed.
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise MissingInputError(f"Local homography file not found: {filepath}")
        with open(filepath, 'r') as f:
            tokens = f.read().split()
        try:
            cols, rows = int(tokens[0]), int(tokens[1])
            values = np.array([float(t) for t in tokens[2:]], dtype=np.float64)
        except (IndexError, ValueError) as e:
            raise ValidationError(f"Malformed local homography file {filepath}: {e}") from e
        if values.size != rows * cols * 9:
            raise ValidationError(
                f"Local homography file {filepath} declares {cols}x{rows} cells "
                f"but holds {values.size // 9}"
            )
        table = cls(rows, cols)
        # Stored column-major over the grid.
        table._cells = values.reshape(cols, rows, 3, 3).transpose(1, 0, 2, 3).copy()
        return table
