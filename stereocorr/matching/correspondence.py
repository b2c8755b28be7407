# -*- coding: utf-8 -*-
"""
Correspondence Sets - Paired left/right points and their binary match files.

A ``CorrespondenceSet`` holds two ``(N, 2)`` arrays of ``(x, y)`` pixel
positions in which row ``i`` of ``left`` corresponds to row ``i`` of
``right``. The set is consumed by robust fitting, search-range estimation
and piecewise alignment.

Match files store a set as a little-endian ``uint64`` pair count followed by
``count`` records of four ``float64`` values ``(xl, yl, xr, yr)``.

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
from pathlib import Path
from typing import Optional, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import MissingInputError, ValidationError
from stereocorr.transforms import apply_transform_to_points


class CorrespondenceSet:
    """Paired pixel correspondences between a left and a right image.

    Parameters
    ----------
    left : np.ndarray
        Left positions. Shape (N, 2), columns are (x, y).
    right : np.ndarray
        Right positions. Shape (N, 2), columns are (x, y).

    Raises
    ------
    ValidationError
        If the arrays are not (N, 2) or differ in length.
    """

    def __init__(self, left: np.ndarray, right: np.ndarray) -> None:
        left = np.asarray(left, dtype=np.float64).reshape(-1, 2)
        right = np.asarray(right, dtype=np.float64).reshape(-1, 2)
        if left.shape != right.shape:
            raise ValidationError(
                f"left and right must have the same shape, "
                f"got {left.shape} and {right.shape}"
            )
        self.left = left
        self.right = right

    @classmethod
    def empty(cls) -> 'CorrespondenceSet':
        return cls(np.empty((0, 2)), np.empty((0, 2)))

    def __len__(self) -> int:
        return self.left.shape[0]

    @property
    def offsets(self) -> np.ndarray:
        """Per-pair disparity ``right - left``. Shape (N, 2)."""
        return self.right - self.left

    def subset(self, indices: np.ndarray) -> 'CorrespondenceSet':
        """Pairs selected by an index array or boolean mask."""
        return CorrespondenceSet(self.left[indices], self.right[indices])

    def translate(self, left_shift, right_shift=None) -> 'CorrespondenceSet':
        """Shift the left (and right) positions by ``(dx, dy)``."""
        if right_shift is None:
            right_shift = left_shift
        return CorrespondenceSet(self.left + np.asarray(left_shift, dtype=np.float64),
                                 self.right + np.asarray(right_shift, dtype=np.float64))

    def scaled(self, factor: float) -> 'CorrespondenceSet':
        return CorrespondenceSet(self.left * factor, self.right * factor)

    def transformed(
        self,
        left_matrix: Optional[np.ndarray] = None,
        right_matrix: Optional[np.ndarray] = None,
    ) -> 'CorrespondenceSet':
        """Map each side through its own transform (None keeps it)."""
        left = self.left if left_matrix is None else \
            apply_transform_to_points(self.left, left_matrix)
        right = self.right if right_matrix is None else \
            apply_transform_to_points(self.right, right_matrix)
        return CorrespondenceSet(left, right)

    def average_delta_y(self) -> float:
        """Mean absolute vertical offset, or -1.0 for an empty set."""
        if len(self) == 0:
            return -1.0
        return float(np.mean(np.abs(self.left[:, 1] - self.right[:, 1])))

    def __repr__(self) -> str:
        return f"CorrespondenceSet(n={len(self)})"


def write_match_file(
    filepath: Union[str, Path],
    correspondences: CorrespondenceSet,
) -> None:
    """Persist a correspondence set as a binary match file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    records = np.hstack([correspondences.left, correspondences.right]).astype('<f8')
    with open(filepath, 'wb') as f:
        np.array([len(correspondences)], dtype='<u8').tofile(f)
        records.tofile(f)


def read_match_file(filepath: Union[str, Path]) -> CorrespondenceSet:
    """Load a binary match file.

    Raises
    ------
    MissingInputError
        If the file does not exist.
    ValidationError
        If the file is truncated or its count disagrees with its size.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise MissingInputError(f"Match file not found: {filepath}")
    with open(filepath, 'rb') as f:
        header = np.fromfile(f, dtype='<u8', count=1)
        if header.size != 1:
            raise ValidationError(f"Match file {filepath} has no header")
        count = int(header[0])
        records = np.fromfile(f, dtype='<f8')
    if records.size != count * 4:
        raise ValidationError(
            f"Match file {filepath} declares {count} pairs but holds "
            f"{records.size // 4}"
        )
    records = records.reshape(count, 4)
    return CorrespondenceSet(records[:, :2], records[:, 2:])
