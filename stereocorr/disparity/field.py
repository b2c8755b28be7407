# -*- coding: utf-8 -*-
"""
Disparity Fields - Dense per-pixel offsets with validity.

``DisparityField`` stores the disparity ``(dx, dy) = right - left`` of every
pixel of a left-image region together with a boolean validity mask. Offsets
are only meaningful where the pixel is valid; invalid pixels hold zeros.

Fields serialize to three bands ``(dx, dy, valid)``, which is the layout of
seed, spread and full-resolution disparity rasters on disk.

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
from typing import Tuple

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.bbox import BBox, SearchRange
from stereocorr.exceptions import ValidationError


class DisparityField:
    """Dense disparity with per-pixel validity.

    Parameters
    ----------
    offsets : np.ndarray
        Disparities. Shape (rows, cols, 2), last axis is (dx, dy).
    valid : np.ndarray
        Validity mask. Shape (rows, cols).

    Raises
    ------
    ValidationError
        If the shapes are inconsistent.
    """

    def __init__(self, offsets: np.ndarray, valid: np.ndarray) -> None:
        offsets = np.asarray(offsets)
        valid = np.asarray(valid, dtype=bool)
        if offsets.ndim != 3 or offsets.shape[2] != 2:
            raise ValidationError(
                f"offsets must have shape (rows, cols, 2), got {offsets.shape}"
            )
        if valid.shape != offsets.shape[:2]:
            raise ValidationError(
                f"valid mask shape {valid.shape} does not match "
                f"offsets shape {offsets.shape[:2]}"
            )
        if not np.issubdtype(offsets.dtype, np.floating):
            offsets = offsets.astype(np.float32)
        offsets = np.where(valid[..., None], offsets, 0)
        self.offsets = offsets
        self.valid = valid

    @classmethod
    def invalid(cls, shape: Tuple[int, int], dtype=np.float32) -> 'DisparityField':
        """All-invalid field of ``(rows, cols)``."""
        return cls(np.zeros(tuple(shape) + (2,), dtype=dtype),
                   np.zeros(tuple(shape), dtype=bool))

    @classmethod
    def from_components(cls, dx: np.ndarray, dy: np.ndarray, valid: np.ndarray) -> 'DisparityField':
        return cls(np.stack([dx, dy], axis=-1), valid)

    @classmethod
    def from_bands(cls, bands: np.ndarray) -> 'DisparityField':
        """Build from a ``(3, rows, cols)`` array of ``(dx, dy, valid)``."""
        bands = np.asarray(bands)
        if bands.ndim != 3 or bands.shape[0] != 3:
            raise ValidationError(
                f"Disparity rasters need 3 bands (dx, dy, valid), got shape {bands.shape}"
            )
        offsets = np.stack([bands[0], bands[1]], axis=-1).astype(np.float32)
        return cls(offsets, bands[2] > 0)

    def to_bands(self, dtype=np.float32) -> np.ndarray:
        """``(3, rows, cols)`` array of ``(dx, dy, valid)``."""
        return np.stack([
            self.offsets[..., 0],
            self.offsets[..., 1],
            self.valid,
        ]).astype(dtype)

    @property
    def shape(self) -> Tuple[int, int]:
        """``(rows, cols)``."""
        return self.valid.shape

    @property
    def dx(self) -> np.ndarray:
        return self.offsets[..., 0]

    @property
    def dy(self) -> np.ndarray:
        return self.offsets[..., 1]

    @property
    def num_valid(self) -> int:
        return int(np.count_nonzero(self.valid))

    def copy(self) -> 'DisparityField':
        return DisparityField(self.offsets.copy(), self.valid.copy())

    def crop(self, bbox: BBox) -> 'DisparityField':
        """Sub-field for ``bbox`` (clipped to the field extent)."""
        box = bbox.crop(BBox(0, 0, self.shape[1], self.shape[0]))
        rows, cols = box.slices
        return DisparityField(self.offsets[rows, cols].copy(), self.valid[rows, cols].copy())

    def paste(self, other: 'DisparityField', origin: Tuple[int, int]) -> None:
        """Write ``other`` into this field with its top-left at ``(x, y)``."""
        x0, y0 = origin
        rows, cols = other.shape
        self.offsets[y0:y0 + rows, x0:x0 + cols] = other.offsets
        self.valid[y0:y0 + rows, x0:x0 + cols] = other.valid

    def disparity_range(self) -> SearchRange:
        """Bounding box of the valid offsets; empty when nothing is valid."""
        return SearchRange.from_offsets(self.offsets[self.valid])

    def max_magnitude(self) -> Tuple[float, float]:
        """Largest ``|dx|`` and ``|dy|`` over valid pixels (0 if none)."""
        if not np.any(self.valid):
            return (0.0, 0.0)
        mags = np.abs(self.offsets[self.valid])
        return (float(mags[:, 0].max()), float(mags[:, 1].max()))

    def translate(self, dx: float, dy: float) -> 'DisparityField':
        """Add a constant offset to every valid pixel."""
        return DisparityField(self.offsets + np.array([dx, dy], dtype=self.offsets.dtype),
                              self.valid.copy())

    def _combine(self, other: 'DisparityField', sign: float) -> 'DisparityField':
        if not isinstance(other, DisparityField):
            return NotImplemented
        if other.shape != self.shape:
            raise ValidationError(
                f"Cannot combine fields of shape {self.shape} and {other.shape}"
            )
        return DisparityField(self.offsets + sign * other.offsets,
                              self.valid & other.valid)

    def __add__(self, other: 'DisparityField') -> 'DisparityField':
        """Offset sum; valid where both fields are valid."""
        return self._combine(other, 1.0)

    def __sub__(self, other: 'DisparityField') -> 'DisparityField':
        return self._combine(other, -1.0)

    def rounded(self) -> 'DisparityField':
        """Offsets rounded to the nearest integer."""
        return DisparityField(np.rint(self.offsets), self.valid.copy())

    def __repr__(self) -> str:
        return (
            f"DisparityField(shape={self.shape}, valid={self.num_valid}, "
            f"range={self.disparity_range()})"
        )
