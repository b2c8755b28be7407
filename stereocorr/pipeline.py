# -*- coding: utf-8 -*-
"""
Stereo Correlation Pipeline - Orchestrate a seeded, tile-parallel run.

``StereoCorrelation`` ties the stages together:

0. determine the global search range (user override, or interest point
   correspondences reduced by the histogram estimator),
1. produce or reuse the low-resolution seed (``LowResDisparityStage``),
2. correlate every output tile at full resolution (``SeededCorrelator``) on
   a thread pool, writing finished tiles through a lock-protected writer,
3. persist the local homography table when piecewise alignment is on.

Fatal errors propagate out of ``run`` before the disparity file is moved
into place, so ``<prefix>-D.tif`` only ever holds a complete result.

Examples
--------
>>> from stereocorr import StereoCorrelation, StereoSettings
>>> settings = StereoSettings(search_range=(-40, -4, 40, 4), num_threads=8)
>>> job = StereoCorrelation('left.tif', 'right.tif', settings, out_prefix='run/out')
>>> job.run()
PosixPath('run/out-D.tif')

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
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.alignment.local_homography import LocalHomographyTable
from stereocorr.alignment.piecewise import PiecewiseAligner
from stereocorr.bbox import BBox, SearchRange
from stereocorr.correlation.base import Matcher
from stereocorr.correlation.factory import create_matcher
from stereocorr.correlation.timing import calc_seconds_per_op
from stereocorr.correlator import SeededCorrelator
from stereocorr.diagnostics import DiagnosticsSink, NullDiagnostics
from stereocorr.disparity.field import DisparityField
from stereocorr.disparity.lowres import (
    LowResDisparityStage,
    SeedResult,
    subsample_image,
    subsample_scale,
)
from stereocorr.disparity.search_range import SearchRangeEstimator
from stereocorr.exceptions import ConfigurationError, MissingInputError, ValidationError
from stereocorr.geolocation.triangulation import filter_by_lonlat_and_elevation
from stereocorr.IO.array import ArrayRasterSource, ArrayRasterWriter
from stereocorr.IO.base import RasterSource, RasterWriter, WindowedRasterSource
from stereocorr.IO.matrix import read_matrix_file
from stereocorr.matching.correspondence import (
    CorrespondenceSet,
    read_match_file,
    write_match_file,
)
from stereocorr.settings import StereoSettings
from stereocorr.tiling import Tile, TileGrid
from stereocorr.vocabulary import SeedMode

logger = logging.getLogger(__name__)

# Global correspondence inlier threshold is this times ``ip_inlier_factor``.
IP_INLIER_BASE = 200.0 * 15.0

RasterInput = Union[RasterSource, np.ndarray, str, Path]


def _open_source(raster: RasterInput) -> RasterSource:
    if isinstance(raster, RasterSource):
        return raster
    if isinstance(raster, (str, Path)):
        from stereocorr.IO.geotiff import GeoTIFFRasterSource
        return GeoTIFFRasterSource(raster)
    return ArrayRasterSource(np.asarray(raster))


class StereoCorrelation:
    """End-to-end seeded correlation of a stereo pair.

    Parameters
    ----------
    left, right : RasterSource, np.ndarray, str or Path
        Full-resolution images; paths are opened as GeoTIFFs.
    settings : StereoSettings, optional
        Run configuration. Defaults to ``StereoSettings()``.
    out_prefix : str
        Prefix of every artifact written or reused.
    left_mask, right_mask : np.ndarray, optional
        Full-image validity masks.
    left_sub, right_sub : np.ndarray, optional
        Precomputed subsampled images. Computed on demand otherwise.
    left_mask_sub, right_mask_sub : np.ndarray, optional
        Masks of the subsampled images.
    cameras : Tuple[CameraModel, CameraModel], optional
        Left/right camera models (terrain seed, geometric filter).
    elevation : ElevationModel, optional
        Terrain heights for the terrain seed.
    external_seed, external_spread : DisparityField, optional
        Precomputed seed for ``SeedMode.EXTERNAL``.
    match_file : str or Path, optional
        Correspondence file that must be used. Missing is an error.
    diagnostics : DiagnosticsSink, optional
        Receives intermediate products.
    matcher_factory : callable
        ``create_matcher``-compatible factory.
    """

    def __init__(
        self,
        left: RasterInput,
        right: RasterInput,
        settings: Optional[StereoSettings] = None,
        out_prefix: str = 'out',
        left_mask: Optional[np.ndarray] = None,
        right_mask: Optional[np.ndarray] = None,
        left_sub: Optional[np.ndarray] = None,
        right_sub: Optional[np.ndarray] = None,
        left_mask_sub: Optional[np.ndarray] = None,
        right_mask_sub: Optional[np.ndarray] = None,
        cameras: Optional[Tuple] = None,
        elevation=None,
        external_seed: Optional[DisparityField] = None,
        external_spread: Optional[DisparityField] = None,
        match_file: Optional[Union[str, Path]] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
        matcher_factory: Callable[..., Matcher] = create_matcher,
    ) -> None:
        self.settings = settings or StereoSettings()
        self.out_prefix = str(out_prefix)
        self.diagnostics = diagnostics or NullDiagnostics()
        self.matcher_factory = matcher_factory
        self.cameras = cameras
        self.elevation = elevation
        self.external_seed = external_seed
        self.external_spread = external_spread
        self.match_file = Path(match_file) if match_file is not None else None

        self.left, self.left_mask = self._apply_crop(
            _open_source(left), left_mask, self.settings.left_image_crop_win)
        self.right, self.right_mask = self._apply_crop(
            _open_source(right), right_mask, self.settings.right_image_crop_win)
        self.left_sub = left_sub
        self.right_sub = right_sub
        self.left_mask_sub = left_mask_sub
        self.right_mask_sub = right_mask_sub

    @staticmethod
    def _apply_crop(source: RasterSource, mask: Optional[np.ndarray], window: Optional[BBox]):
        if window is None:
            return source, mask
        view = WindowedRasterSource(source, window)
        if mask is not None:
            mask = np.asarray(mask)[view.window.slices]
        return view, mask

    # -- artifact paths --

    def artifact(self, suffix: str) -> Path:
        return Path(f"{self.out_prefix}{suffix}")

    # -- subsampled images --

    def _subsampled(self) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
        if self.left_sub is None or self.right_sub is None:
            scale = subsample_scale(self.left.size())
            logger.info("Subsampling images by %.4f", scale)
            self.left_sub, self.left_mask_sub = subsample_image(
                self.left.read_full(), self.left_mask, scale)
            self.right_sub, self.right_mask_sub = subsample_image(
                self.right.read_full(), self.right_mask, scale)
        return self.left_sub, self.right_sub, self.left_mask_sub, self.right_mask_sub

    def _sub_scale(self) -> float:
        sub_rows, sub_cols = self.left_sub.shape
        cols, rows = self.left.size()
        return (sub_cols / float(cols) + sub_rows / float(rows)) / 2.0

    # -- stage 0: search range --

    def _compute_correspondences(self) -> CorrespondenceSet:
        from stereocorr.matching.features import FeatureCorrespondenceFinder
        settings = self.settings
        left_sub, right_sub, left_mask_sub, right_mask_sub = self._subsampled()
        finder = FeatureCorrespondenceFinder(
            method=settings.feature_method,
            ip_per_tile=settings.ip_per_tile,
            inlier_threshold=IP_INLIER_BASE * settings.ip_inlier_factor,
            num_iterations=settings.ransac_iterations,
            rng=settings.random_seed,
            diagnostics=self.diagnostics,
        )
        return finder.find(left_sub, right_sub, left_mask_sub, right_mask_sub,
                           name='L_sub__R_sub')

    def load_correspondences(self) -> Tuple[CorrespondenceSet, float]:
        """Interest point matches and their resolution relative to full.

        The explicitly requested match file is used when given. Otherwise a
        cached full-resolution file, then a cached subsampled file, is
        reused; failing both, matches are detected on the subsampled images
        and cached.

        Raises
        ------
        MissingInputError
            If the requested match file does not exist.
        """
        if self.match_file is not None:
            if not self.match_file.exists():
                raise MissingInputError(f"Requested match file not found: {self.match_file}")
            return read_match_file(self.match_file), 1.0

        full_path = self.artifact('-L__R.match')
        if full_path.exists():
            logger.info("Using cached match file %s", full_path)
            return read_match_file(full_path), 1.0

        sub_path = self.artifact('-L_sub__R_sub.match')
        self._subsampled()
        if sub_path.exists() and not self.settings.has_crop_override:
            logger.info("Using cached match file %s", sub_path)
            matches = read_match_file(sub_path)
        else:
            matches = self._compute_correspondences()
            write_match_file(sub_path, matches)
            logger.info("Wrote %d correspondences to %s", len(matches), sub_path)
        return matches, self._sub_scale()

    def determine_search_range(self) -> Optional[SearchRange]:
        """Global full-resolution search range.

        Returns
        -------
        SearchRange or None
            None when the seed mode reads the range from the seed.

        Raises
        ------
        DegenerateGeometryError
            If no correspondences survive filtering.
        MissingInputError
            If a requested match file does not exist.
        """
        settings = self.settings
        if settings.search_range is not None:
            search_range = settings.search_range
            crop_left = settings.left_image_crop_win is not None
            crop_right = settings.right_image_crop_win is not None
            if crop_left and not crop_right:
                search_range = search_range.translate(*settings.left_image_crop_win.origin)
            if crop_right and not crop_left:
                ox, oy = settings.right_image_crop_win.origin
                search_range = search_range.translate(-ox, -oy)
            search_range = search_range.crop(settings.search_range_limit)
            logger.info("Using user search range %s", search_range)
            return search_range

        if settings.seed_mode in (SeedMode.TERRAIN, SeedMode.EXTERNAL):
            logger.info("Search range will be read from the seed disparity")
            return None

        matches, scale = self.load_correspondences()

        if self.cameras is not None and (settings.elevation_limit is not None
                                         or settings.lon_lat_limit is not None):
            matches = filter_by_lonlat_and_elevation(
                self.cameras[0], self.cameras[1], matches,
                settings.elevation_limit, settings.lon_lat_limit, scale)

        left_matrix = right_matrix = None
        align_left = self.artifact('-align-L.txt')
        align_right = self.artifact('-align-R.txt')
        if align_left.exists() and align_right.exists():
            left_matrix = read_matrix_file(align_left)
            right_matrix = read_matrix_file(align_right)
            matches = matches.scaled(1.0 / scale)
            scale = 1.0
            logger.info("Applying alignment matrices %s and %s", align_left, align_right)

        search_range = SearchRangeEstimator().from_correspondences(
            matches, scale, left_matrix, right_matrix)
        search_range = search_range.crop(settings.search_range_limit)
        logger.info("Detected search range %s", search_range)
        return search_range

    # -- stage 1: seed --

    def compute_seed(self, search_range: Optional[SearchRange]) -> SeedResult:
        settings = self.settings
        if settings.seed_mode is SeedMode.DISABLED:
            return SeedResult(None, None, search_range)
        left_sub, right_sub, left_mask_sub, right_mask_sub = self._subsampled()
        stage = LowResDisparityStage(settings, self.matcher_factory, self.diagnostics)
        return stage.run(
            left_sub, right_sub, left_mask_sub, right_mask_sub,
            self.left.size(), search_range, self.out_prefix,
            cameras=self.cameras, elevation=self.elevation,
            external_seed=self.external_seed, external_spread=self.external_spread,
        )

    # -- stage 2: full resolution --

    def processing_region(self) -> BBox:
        """Left-image region written to the output."""
        image = self.left.bbox
        window = self.settings.trans_crop_win
        region = image if window is None else window.crop(image)
        if region.is_empty():
            raise ConfigurationError(
                f"trans_crop_win {tuple(window)} does not overlap the image {self.left.size()}"
            )
        return region

    def _check_sgm_tiling(self, region: BBox) -> None:
        if not self.settings.uses_sgm:
            return
        largest = max(region.width, region.height)
        if self.settings.tile_size < largest:
            raise ConfigurationError(
                f"SGM correlates the whole image as one tile: corr_tile_size "
                f"({self.settings.tile_size}) must be at least {largest}"
            )

    def _calibrate(self, matcher: Matcher) -> None:
        if self.settings.corr_timeout <= 0:
            return
        box = self.left.bbox
        size = 256
        cx, cy = box.width // 2, box.height // 2
        sample = BBox(cx - size // 2, cy - size // 2, cx + size // 2, cy + size // 2).crop(box)
        left, left_valid = self.left.read_tile_and_mask(sample)
        right_box = sample.crop(self.right.bbox)
        right, right_valid = self.right.read_tile_and_mask(right_box)
        matcher.seconds_per_op = calc_seconds_per_op(matcher, left, right,
                                                     left_valid, right_valid)

    def build_correlator(
        self,
        seed: SeedResult,
        homographies: Optional[LocalHomographyTable] = None,
    ) -> SeededCorrelator:
        settings = self.settings
        matcher = self.matcher_factory(settings)
        self._calibrate(matcher)
        aligner = None
        if settings.uses_piecewise_alignment:
            aligner = PiecewiseAligner.from_settings(settings, self.diagnostics)
        return SeededCorrelator(
            self.left, self.right, self.left_mask, self.right_mask, matcher, settings,
            seed=seed.disparity, spread=seed.spread, aligner=aligner,
            homographies=homographies, search_range=seed.search_range,
            diagnostics=self.diagnostics,
        )

    def _process_tile(
        self,
        correlator: SeededCorrelator,
        tile: Tile,
        region: BBox,
        writer: RasterWriter,
        dtype,
    ) -> int:
        overlap = tile.bbox.crop(region)
        field = correlator.evaluate(tile).crop(overlap.relative_to(tile.bbox))
        if not correlator.matcher.produces_float:
            field = field.rounded()
        writer.write_chip(field.to_bands(dtype),
                          overlap.min_y - region.min_y, overlap.min_x - region.min_x)
        logger.debug("Finished tile (%d, %d)", tile.row, tile.col)
        return field.num_valid

    def correlate(
        self,
        correlator: SeededCorrelator,
        writer: RasterWriter,
        region: Optional[BBox] = None,
    ) -> int:
        """Evaluate every tile touching ``region`` into ``writer``.

        Returns
        -------
        int
            Number of valid output pixels.
        """
        region = region or self.processing_region()
        self._check_sgm_tiling(region)
        dtype = np.float32 if correlator.matcher.produces_float else np.int32
        tiles = correlator.grid.tiles_for_region(region)
        workers = self.settings.worker_count
        logger.info("Correlating %d tile(s) with %d worker(s)", len(tiles), workers)

        matched = 0
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._process_tile, correlator, tile, region, writer, dtype)
                       for tile in tiles]
            for future in as_completed(futures):
                matched += future.result()
        return matched

    def compute_disparity(self, seed: Optional[SeedResult] = None) -> DisparityField:
        """Full-resolution disparity of the processing region, in memory."""
        if seed is None:
            seed = self.compute_seed(self.determine_search_range())
        region = self.processing_region()
        self._check_sgm_tiling(region)
        correlator = self.build_correlator(seed, self.local_table())
        writer = ArrayRasterWriter(3, region.height, region.width,
                                   dtype=np.float32 if correlator.matcher.produces_float
                                   else np.int32)
        self.correlate(correlator, writer, region)
        return DisparityField.from_bands(writer.data)

    def local_table(self) -> Optional[LocalHomographyTable]:
        """Local homography table for stage 2.

        A table left by an earlier run is reused when it matches the tile
        grid and no crop window invalidates it. Otherwise every cell starts
        as identity.
        """
        if not self.settings.uses_piecewise_alignment:
            return None
        cols, rows = self.left.size()
        grid = TileGrid(cols, rows, self.settings.tile_size)
        path = self.artifact('-local_hom.txt')
        if path.exists() and not self.settings.has_crop_override:
            try:
                table = LocalHomographyTable.load(path)
            except ValidationError as e:
                logger.warning("Ignoring unreadable local homographies %s: %s", path, e)
            else:
                if table.shape == grid.shape:
                    logger.info("Read local homographies from %s", path)
                    return table
                logger.warning(
                    "Local homographies %s cover %s tiles, expected %s; starting over",
                    path, table.shape, grid.shape,
                )
        return LocalHomographyTable(*grid.shape)

    # -- entry point --

    def run(self) -> Optional[Path]:
        """Run every stage and write ``<prefix>-D.tif``.

        Returns
        -------
        Path or None
            The disparity file, or None when only the seed was requested.
        """
        from stereocorr.IO.geotiff import GeoTIFFWriter

        settings = self.settings
        logger.info("Stage 0 --> SEARCH RANGE DETERMINATION")
        search_range = self.determine_search_range()

        logger.info("Stage 1 --> LOW-RESOLUTION CORRELATION")
        seed = self.compute_seed(search_range)
        logger.info("Low-resolution correlation finished")
        if settings.compute_low_res_disparity_only:
            return None
        if seed.disparity is None and (seed.search_range is None or seed.search_range.is_empty()):
            raise ConfigurationError(
                "No search range: set search_range or enable a seed mode"
            )

        logger.info("Stage 2 --> FULL-RESOLUTION CORRELATION")
        region = self.processing_region()
        self._check_sgm_tiling(region)
        table = self.local_table()
        correlator = self.build_correlator(seed, table)
        dtype = np.float32 if correlator.matcher.produces_float else np.int32

        output = self.artifact('-D.tif')
        partial = self.artifact('-D.partial.tif')
        with GeoTIFFWriter(partial, region.width, region.height, 3, dtype=dtype) as writer:
            matched = self.correlate(correlator, writer, region)
        os.replace(partial, output)
        logger.info("Wrote %s (%d valid pixels)", output, matched)

        if table is not None:
            table.save(self.artifact('-local_hom.txt'))
        logger.info("Correlation finished")
        return output
