# -*- coding: utf-8 -*-
"""
Matching Costs - Per-pixel costs and census transforms.

Pixel costs compare a left raster with a shifted right raster. The window
matcher averages them over the correlation kernel, so lower is always
better. Census costs are Hamming distances between bit codes describing
each pixel's 3x3 neighborhood.

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
from stereocorr.vocabulary import CostFunction

# Set-bit counts of every byte value.
_POPCOUNT = np.array([bin(i).count('1') for i in range(256)], dtype=np.uint8)

_NEIGHBORS = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]


def _neighbor(image: np.ndarray, dr: int, dc: int) -> np.ndarray:
    padded = np.pad(image, 1, mode='edge')
    rows, cols = image.shape
    return padded[1 + dr:1 + dr + rows, 1 + dc:1 + dc + cols]


def census_transform(image: np.ndarray) -> np.ndarray:
    """8-bit census code: bit ``k`` is set when neighbor ``k`` < center."""
    code = np.zeros(image.shape, dtype=np.uint8)
    for bit, (dr, dc) in enumerate(_NEIGHBORS):
        code |= (_neighbor(image, dr, dc) < image).astype(np.uint8) << bit
    return code


def ternary_census_transform(image: np.ndarray, threshold: float) -> np.ndarray:
    """Two-plane census code separating darker, similar and brighter neighbors.

    Returns
    -------
    np.ndarray
        uint16 codes. The low byte flags neighbors darker than
        ``center - threshold``, the high byte neighbors brighter than
        ``center + threshold``.
    """
    code = np.zeros(image.shape, dtype=np.uint16)
    for bit, (dr, dc) in enumerate(_NEIGHBORS):
        n = _neighbor(image, dr, dc)
        code |= (n < image - threshold).astype(np.uint16) << bit
        code |= (n > image + threshold).astype(np.uint16) << (bit + 8)
    return code


def hamming_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Per-pixel Hamming distance between uint8 or uint16 codes."""
    x = np.bitwise_xor(a, b)
    if x.dtype == np.uint16:
        return (_POPCOUNT[x & 0xFF] + _POPCOUNT[x >> 8]).astype(np.float64)
    return _POPCOUNT[x].astype(np.float64)


def pixel_cost(left: np.ndarray, right: np.ndarray, cost: CostFunction) -> np.ndarray:
    """Per-pixel difference cost for the difference and census costs.

    Census costs expect pre-computed codes. Normalized cross correlation is
    not a per-pixel cost and is handled by the window matcher itself.
    """
    if cost is CostFunction.ABSOLUTE_DIFFERENCE:
        return np.abs(left - right)
    if cost is CostFunction.SQUARED_DIFFERENCE:
        return (left - right) ** 2
    if cost in (CostFunction.CENSUS_TRANSFORM, CostFunction.TERNARY_CENSUS_TRANSFORM):
        return hamming_distance(left, right)
    raise ValueError(f"{cost} has no per-pixel form")
