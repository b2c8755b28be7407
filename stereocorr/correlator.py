# -*- coding: utf-8 -*-
"""
Seeded Correlator - Full-resolution disparity of one tile at a time.

``SeededCorrelator`` evaluates a tile of the left image by:

1. bounding its search range with the seed disparity (plus spread),
2. optionally realigning the tile pair with a ``PiecewiseAligner``,
3. running the matcher on the tile (expanded by half a kernel, or by the
   alignment margin when warped),
4. mapping warped results back into the native tile frame.

Tiles are independent and may be evaluated from several threads at once.
The only state a tile writes outside its own result is its cell of the
local homography table, reached through a pre-claimed ``CellHandle``.

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
import math
from typing import Dict, Optional, Tuple, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.alignment.local_homography import CellHandle, LocalHomographyTable
from stereocorr.alignment.piecewise import PiecewiseAligner
from stereocorr.bbox import BBox, SearchRange
from stereocorr.correlation.base import Matcher
from stereocorr.diagnostics import DiagnosticsSink, NullDiagnostics
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ConfigurationError, ValidationError
from stereocorr.IO.array import ArrayRasterSource
from stereocorr.IO.base import RasterSource
from stereocorr.settings import StereoSettings
from stereocorr.tiling import Tile, TileGrid
from stereocorr.transforms import apply_transform_to_points, invert, warp_image, warp_mask

logger = logging.getLogger(__name__)

RasterLike = Union[RasterSource, np.ndarray]


def _as_source(raster: RasterLike) -> RasterSource:
    if isinstance(raster, RasterSource):
        return raster
    return ArrayRasterSource(np.asarray(raster))


def _divide(search_range: SearchRange, fx: float, fy: float) -> SearchRange:
    """Range divided per axis, without rounding."""
    if search_range.is_empty():
        return search_range
    return SearchRange(search_range.min_x / fx, search_range.min_y / fy,
                       search_range.max_x / fx, search_range.max_y / fy)


def reconcile_disparity(
    warped: DisparityField,
    left_matrix: np.ndarray,
    right_matrix: np.ndarray,
    native_shape: Tuple[int, int],
) -> DisparityField:
    """Express a disparity measured between warped rasters in the native frame.

    For each native left pixel ``p``, ``q = L p`` is looked up in the warped
    field (nearest), and the right position ``R^-1 (q + D(q))`` gives the
    native disparity ``R^-1 (q + D(q)) - p``.

    Parameters
    ----------
    warped : DisparityField
        Disparity between the warped left and right rasters.
    left_matrix, right_matrix : np.ndarray
        Native crop frame to render frame transforms.
    native_shape : Tuple[int, int]
        ``(rows, cols)`` of the native left crop.

    Returns
    -------
    DisparityField
        Native-frame disparity. Lookups outside the render frame or on
        invalid pixels are invalid.
    """
    rows, cols = native_shape
    ys, xs = np.mgrid[0:rows, 0:cols]
    native = np.column_stack([xs.ravel(), ys.ravel()]).astype(np.float64)
    q = apply_transform_to_points(native, left_matrix)

    w_rows, w_cols = warped.shape
    qc = np.rint(q[:, 0]).astype(np.intp)
    qr = np.rint(q[:, 1]).astype(np.intp)
    inside = (qc >= 0) & (qc < w_cols) & (qr >= 0) & (qr < w_rows)
    qc = np.clip(qc, 0, w_cols - 1)
    qr = np.clip(qr, 0, w_rows - 1)
    valid = inside & warped.valid[qr, qc]

    target = q + warped.offsets[qr, qc].astype(np.float64)
    right = apply_transform_to_points(target, invert(right_matrix))
    offsets = (right - native).reshape(rows, cols, 2)
    return DisparityField(offsets.astype(np.float32), valid.reshape(rows, cols))


class SeededCorrelator:
    """Lazily correlate the tiles of a left image against a right image.

    Parameters
    ----------
    left, right : RasterSource or np.ndarray
        Full-resolution images.
    left_mask, right_mask : np.ndarray, optional
        Validity masks, combined with each source's nodata/finite test.
    matcher : Matcher
        Correlation engine.
    settings : StereoSettings
        Run configuration (tile size, kernel, alignment margin, limits).
    seed : DisparityField, optional
        Low-resolution disparity bounding each tile's search.
    spread : DisparityField, optional
        Seed uncertainty; must match the seed's shape.
    aligner : PiecewiseAligner, optional
        Per-tile realignment.
    homographies : LocalHomographyTable, optional
        Table receiving per-tile alignment transforms. Every cell is
        claimed by this correlator.
    search_range : SearchRange, optional
        Global full-resolution range, used when there is no seed.
    diagnostics : DiagnosticsSink, optional
        Receives per-tile crops and matcher output.

    Raises
    ------
    ConfigurationError
        If the spread does not match the seed, the table does not match the
        tile grid, or neither a seed nor a search range is given.
    """

    def __init__(
        self,
        left: RasterLike,
        right: RasterLike,
        left_mask: Optional[np.ndarray],
        right_mask: Optional[np.ndarray],
        matcher: Matcher,
        settings: StereoSettings,
        seed: Optional[DisparityField] = None,
        spread: Optional[DisparityField] = None,
        aligner: Optional[PiecewiseAligner] = None,
        homographies: Optional[LocalHomographyTable] = None,
        search_range: Optional[SearchRange] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        self.left = _as_source(left)
        self.right = _as_source(right)
        self.left_mask = self._check_mask(left_mask, self.left, 'left')
        self.right_mask = self._check_mask(right_mask, self.right, 'right')
        self.matcher = matcher
        self.settings = settings
        self.aligner = aligner
        self.diagnostics = diagnostics or NullDiagnostics()

        if spread is not None:
            if seed is None:
                raise ConfigurationError("A seed spread was given without a seed")
            if spread.shape != seed.shape:
                raise ConfigurationError(
                    f"D_sub and D_sub_spread must have equal sizes, got "
                    f"{seed.shape} and {spread.shape}"
                )
        if seed is None and (search_range is None or search_range.is_empty()):
            raise ConfigurationError(
                "Correlation needs either a seed disparity or a global search range"
            )
        self.seed = seed
        self.spread = spread
        self.search_range = search_range

        cols, rows = self.left.size()
        self.grid = TileGrid(cols, rows, settings.tile_size)
        if seed is not None:
            self.upscale = (cols / float(seed.shape[1]), rows / float(seed.shape[0]))
        else:
            self.upscale = (1.0, 1.0)

        self._cells: Dict[Tuple[int, int], CellHandle] = {}
        if homographies is not None:
            if tuple(homographies.shape) != self.grid.shape:
                raise ConfigurationError(
                    f"Local homography table {homographies.shape} does not match "
                    f"tile grid {self.grid.shape}"
                )
            self._cells = homographies.claim_all(t.index for t in self.grid.iter_tiles())

    @staticmethod
    def _check_mask(mask, source: RasterSource, side: str) -> Optional[np.ndarray]:
        if mask is None:
            return None
        mask = np.asarray(mask, dtype=bool)
        cols, rows = source.size()
        if mask.shape != (rows, cols):
            raise ValidationError(
                f"{side} mask shape {mask.shape} does not match image {(rows, cols)}"
            )
        return mask

    def _read(self, source: RasterSource, mask: Optional[np.ndarray], bbox: BBox):
        data, valid = source.read_tile_and_mask(bbox)
        if mask is not None:
            valid &= mask[bbox.slices]
        return np.where(valid, data, 0.0), valid

    # -- search range --

    def tile_search_range(self, tile: Tile) -> SearchRange:
        """Search range of a tile in seed units (full-res units without a seed)."""
        if self.seed is None:
            return self.search_range
        ux, uy = self.upscale
        box = tile.bbox
        seed_box = BBox(int(math.floor(box.min_x / ux)), int(math.floor(box.min_y / uy)),
                        int(math.ceil(box.max_x / ux)), int(math.ceil(box.max_y / uy)))
        seed_box = seed_box.expand(1).crop(BBox(0, 0, self.seed.shape[1], self.seed.shape[0]))
        local = self.seed.crop(seed_box).disparity_range()
        if local.is_empty():
            return local
        if self.spread is not None:
            sx, sy = self.spread.crop(seed_box).max_magnitude()
            local = local.expand((sx, sy))
        return local.grow_to_int().expand(1)

    # -- tile evaluation --

    def _match_unwarped(self, tile: Tile, full_range: SearchRange) -> DisparityField:
        kx, ky = self.settings.kernel_size
        left_box = tile.bbox.expand((kx // 2, ky // 2)).crop(self.left.bbox)
        min_x, min_y, max_x, max_y = full_range.as_int()
        right_box = BBox(left_box.min_x + min_x, left_box.min_y + min_y,
                         left_box.max_x + max_x, left_box.max_y + max_y).crop(self.right.bbox)
        if right_box.is_empty():
            return DisparityField.invalid(tile.bbox.shape)

        left_data, left_valid = self._read(self.left, self.left_mask, left_box)
        right_data, right_valid = self._read(self.right, self.right_mask, right_box)
        shift_x = right_box.min_x - left_box.min_x
        shift_y = right_box.min_y - left_box.min_y
        result = self.matcher.match(left_data, right_data, left_valid, right_valid,
                                    full_range.translate(-shift_x, -shift_y))
        result = result.translate(shift_x, shift_y)
        return result.crop(tile.bbox.relative_to(left_box))

    def evaluate(self, tile: Tile) -> DisparityField:
        """Full-resolution disparity of one tile.

        Parameters
        ----------
        tile : Tile
            Tile of ``self.grid``.

        Returns
        -------
        DisparityField
            Shape ``tile.bbox.shape``, in absolute full-resolution offsets.
        """
        label = f"tile_{tile.row}_{tile.col}"
        ux, uy = self.upscale
        local_range = self.tile_search_range(tile)
        if local_range.is_empty():
            logger.debug("%s: no valid seed disparity; tile left invalid", label)
            return DisparityField.invalid(tile.bbox.shape)

        aligned = None
        margin_box = None
        if self.aligner is not None and self.settings.uses_piecewise_alignment:
            margin_box = tile.bbox.expand(self.settings.piecewise_margin).crop(self.left.bbox)
            right_box = margin_box.crop(self.right.bbox)
            left_crop, left_valid = self._read(self.left, self.left_mask, margin_box)
            right_crop, right_valid = self._read(self.right, self.right_mask, right_box)
            result = self.aligner.align(
                left_crop, right_crop, left_valid, right_valid,
                local_range.scale((ux, uy)), tile=tile, cell=self._cells.get(tile.index),
            )
            if result.aligned:
                aligned = (result, left_crop, left_valid, right_crop, right_valid)
                local_range = _divide(result.search_range, ux, uy)

        full_range = local_range.scale((ux, uy)).crop(self.settings.search_range_limit)
        if full_range.is_empty():
            logger.debug("%s: search range empty after limit; tile left invalid", label)
            return DisparityField.invalid(tile.bbox.shape)
        logger.debug("%s: search range %s", label, full_range)

        if aligned is None:
            field = self._match_unwarped(tile, full_range)
        else:
            result, left_crop, left_valid, right_crop, right_valid = aligned
            shape = result.render_shape
            warped_left = warp_image(left_crop, result.left_matrix, shape)
            warped_right = warp_image(right_crop, result.right_matrix, shape)
            warped_lmask = warp_mask(left_valid, result.left_matrix, shape)
            warped_rmask = warp_mask(right_valid, result.right_matrix, shape)
            self.diagnostics.write_image(f"{label}-left-warped", warped_left)
            self.diagnostics.write_image(f"{label}-right-warped", warped_right)
            warped = self.matcher.match(warped_left, warped_right,
                                        warped_lmask, warped_rmask, full_range)
            native = reconcile_disparity(warped, result.left_matrix, result.right_matrix,
                                         left_crop.shape)
            field = native.crop(tile.bbox.relative_to(margin_box))

        self.diagnostics.write_image(f"{label}-disparity", field.to_bands())
        logger.debug("%s: %d of %d pixels matched", label, field.num_valid,
                     tile.bbox.width * tile.bbox.height)
        return field

    def read_region(self, bbox: BBox) -> DisparityField:
        """Disparity of an arbitrary left-image region, assembled from tiles."""
        bbox = bbox.crop(self.grid.image_bbox)
        out = DisparityField.invalid(bbox.shape)
        for tile in self.grid.tiles_for_region(bbox):
            overlap = tile.bbox.crop(bbox)
            field = self.evaluate(tile).crop(overlap.relative_to(tile.bbox))
            out.paste(field, (overlap.min_x - bbox.min_x, overlap.min_y - bbox.min_y))
        return out
