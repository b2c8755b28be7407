# -*- coding: utf-8 -*-
"""
Boxes - Pixel extents and disparity search ranges.

``BBox`` is a half-open integer pixel rectangle used for tiles, crops and
windows. ``SearchRange`` is a closed box over disparity offsets ``(dx, dy)``.
Both are immutable ``NamedTuple`` subclasses in ``(x, y)`` order, so every
operation returns a new box.

An empty ``SearchRange`` (``min > max``) means "no constraint": it is the
identity of ``grow`` and is never used to clip another range.

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
import math
from typing import NamedTuple, Optional, Sequence, Tuple, Union

# Third-party
import numpy as np


class BBox(NamedTuple):
    """Half-open pixel rectangle ``[min_x, max_x) x [min_y, max_y)``.

    Use directly for numpy slicing::

        chip = image[box.slices]
    """

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @classmethod
    def from_size(cls, width: int, height: int) -> 'BBox':
        """Box covering a ``width`` x ``height`` image."""
        return cls(0, 0, int(width), int(height))

    @property
    def width(self) -> int:
        return max(0, self.max_x - self.min_x)

    @property
    def height(self) -> int:
        return max(0, self.max_y - self.min_y)

    @property
    def size(self) -> Tuple[int, int]:
        """``(width, height)``."""
        return (self.width, self.height)

    @property
    def shape(self) -> Tuple[int, int]:
        """``(rows, cols)`` of an array covering this box."""
        return (self.height, self.width)

    @property
    def origin(self) -> Tuple[int, int]:
        return (self.min_x, self.min_y)

    @property
    def slices(self) -> Tuple[slice, slice]:
        """Row and column slices for indexing a ``(rows, cols)`` array."""
        return (slice(self.min_y, self.max_y), slice(self.min_x, self.max_x))

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def expand(self, amount: Union[int, Tuple[int, int]]) -> 'BBox':
        """Grow on all sides by ``amount`` pixels (or ``(ax, ay)``)."""
        ax, ay = (amount, amount) if np.isscalar(amount) else amount
        return BBox(self.min_x - ax, self.min_y - ay,
                    self.max_x + ax, self.max_y + ay)

    def crop(self, other: 'BBox') -> 'BBox':
        """Intersection with ``other``. Disjoint boxes give an empty box."""
        min_x = max(self.min_x, other.min_x)
        min_y = max(self.min_y, other.min_y)
        max_x = max(min_x, min(self.max_x, other.max_x))
        max_y = max(min_y, min(self.max_y, other.max_y))
        return BBox(min_x, min_y, max_x, max_y)

    def intersect(self, other: 'BBox') -> 'BBox':
        return self.crop(other)

    def translate(self, dx: int, dy: int) -> 'BBox':
        return BBox(self.min_x + dx, self.min_y + dy,
                    self.max_x + dx, self.max_y + dy)

    def contains(self, other: 'BBox') -> bool:
        return (self.min_x <= other.min_x and self.min_y <= other.min_y
                and other.max_x <= self.max_x and other.max_y <= self.max_y)

    def relative_to(self, outer: 'BBox') -> 'BBox':
        """This box expressed in the pixel frame of ``outer``."""
        return self.translate(-outer.min_x, -outer.min_y)


class SearchRange(NamedTuple):
    """Closed disparity box ``[min_x, max_x] x [min_y, max_y]``.

    Examples
    --------
    >>> rng = SearchRange(-4.5, -2.7, 4.5, 2.7).inflate(2.0)
    >>> rng
    SearchRange(min_x=-9.0, min_y=-5.4, max_x=9.0, max_y=5.4)
    """

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def empty(cls) -> 'SearchRange':
        return cls(math.inf, math.inf, -math.inf, -math.inf)

    @classmethod
    def from_offsets(cls, offsets: np.ndarray) -> 'SearchRange':
        """Bounding box of an ``(N, 2)`` array of ``(dx, dy)`` offsets."""
        offsets = np.asarray(offsets, dtype=np.float64).reshape(-1, 2)
        if offsets.shape[0] == 0:
            return cls.empty()
        lo = offsets.min(axis=0)
        hi = offsets.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))

    @classmethod
    def coerce(cls, value: Optional[Sequence[float]]) -> Optional['SearchRange']:
        """Build from a 4-sequence ``(min_x, min_y, max_x, max_y)``."""
        if value is None or isinstance(value, SearchRange):
            return value
        if len(value) != 4:
            raise ValueError(
                f"A search range needs 4 values (min_x, min_y, max_x, max_y), "
                f"got {len(value)}"
            )
        return cls(*(float(v) for v in value))

    def is_empty(self) -> bool:
        return self.min_x > self.max_x or self.min_y > self.max_y

    @property
    def width(self) -> float:
        return 0.0 if self.is_empty() else self.max_x - self.min_x

    @property
    def height(self) -> float:
        return 0.0 if self.is_empty() else self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    def grow(self, other: Union['SearchRange', Sequence[float]]) -> 'SearchRange':
        """Smallest range containing this range and a range or point."""
        if len(other) == 2:
            other = SearchRange(other[0], other[1], other[0], other[1])
        if self.is_empty():
            return SearchRange(*other)
        if SearchRange(*other).is_empty():
            return self
        return SearchRange(min(self.min_x, other[0]), min(self.min_y, other[1]),
                           max(self.max_x, other[2]), max(self.max_y, other[3]))

    def expand(self, amount: Union[float, Tuple[float, float]]) -> 'SearchRange':
        if self.is_empty():
            return self
        ax, ay = (amount, amount) if np.isscalar(amount) else amount
        return SearchRange(self.min_x - ax, self.min_y - ay,
                           self.max_x + ax, self.max_y + ay)

    def crop(self, limit: Optional['SearchRange']) -> 'SearchRange':
        """Clip to ``limit``. ``None`` or an empty limit leaves it unchanged."""
        if limit is None or limit.is_empty() or self.is_empty():
            return self
        return SearchRange(max(self.min_x, limit.min_x), max(self.min_y, limit.min_y),
                           min(self.max_x, limit.max_x), min(self.max_y, limit.max_y))

    def translate(self, dx: float, dy: float) -> 'SearchRange':
        return SearchRange(self.min_x + dx, self.min_y + dy,
                           self.max_x + dx, self.max_y + dy)

    def grow_to_int(self) -> 'SearchRange':
        """Floor the minimum corner and ceil the maximum corner."""
        if self.is_empty():
            return self
        return SearchRange(float(math.floor(self.min_x)), float(math.floor(self.min_y)),
                           float(math.ceil(self.max_x)), float(math.ceil(self.max_y)))

    def scale(self, factor: Union[float, Tuple[float, float]]) -> 'SearchRange':
        """Multiply by ``factor`` per axis, then floor min and ceil max."""
        if self.is_empty():
            return self
        fx, fy = (factor, factor) if np.isscalar(factor) else factor
        return SearchRange(float(math.floor(self.min_x * fx)),
                           float(math.floor(self.min_y * fy)),
                           float(math.ceil(self.max_x * fx)),
                           float(math.ceil(self.max_y * fy)))

    def multiply(self, factor: float) -> 'SearchRange':
        """Multiply both corners by ``factor`` about the origin."""
        return SearchRange(self.min_x * factor, self.min_y * factor,
                           self.max_x * factor, self.max_y * factor)

    def inflate(self, factor: float) -> 'SearchRange':
        """Scale the half-extents by ``factor`` about the center."""
        if self.is_empty():
            return self
        cx, cy = self.center
        hx = self.width / 2.0 * factor
        hy = self.height / 2.0 * factor
        return SearchRange(cx - hx, cy - hy, cx + hx, cy + hy)

    def contains(self, other: Union['SearchRange', Sequence[float]]) -> bool:
        """Whether a range or a ``(dx, dy)`` point lies inside."""
        if self.is_empty():
            return False
        if len(other) == 2:
            other = (other[0], other[1], other[0], other[1])
        return (self.min_x <= other[0] and self.min_y <= other[1]
                and other[2] <= self.max_x and other[3] <= self.max_y)

    def as_int(self) -> Tuple[int, int, int, int]:
        """Integer corners after ``grow_to_int``."""
        r = self.grow_to_int()
        return (int(r.min_x), int(r.min_y), int(r.max_x), int(r.max_y))

    def __str__(self) -> str:
        if self.is_empty():
            return "(empty)"
        return f"({self.min_x:g}, {self.min_y:g}) -> ({self.max_x:g}, {self.max_y:g})"
