# -*- coding: utf-8 -*-
"""
Low-Resolution Stage - Produce the seed disparity (D_sub).

The seed is a coarse disparity over subsampled images. It bounds the search
of every full-resolution tile, so it is cleaned aggressively. The policy
depends on ``seed_mode``:

* ``DISABLED`` produces nothing.
* ``CORRELATION`` correlates the subsampled pair with the window matcher
  over the padded, downscaled global range, then removes outliers.
* ``TERRAIN`` predicts the seed from camera models and a DEM.
* ``EXTERNAL`` takes a seed (and spread) computed elsewhere.

The seed and spread are cached as ``<prefix>-D_sub.tif`` and
``<prefix>-D_sub_spread.tif`` and reused unless a crop window is set or the
cached file is unreadable. A seed passed in directly is never cached. A cached
terrain or external seed must have its spread beside it.

Dependencies
------------
opencv-python-headless
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
import math
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Tuple

# Third-party
import numpy as np

try:
    import cv2
    _HAS_CV2 = True
except ImportError:
    _HAS_CV2 = False

# stereocorr internal
from stereocorr.alignment.local_homography import LocalHomographyTable
from stereocorr.bbox import SearchRange
from stereocorr.correlation.base import Matcher
from stereocorr.correlation.factory import create_matcher
from stereocorr.correlation.filters import (
    remove_small_blobs,
    rm_outliers_using_quantiles,
    rm_outliers_using_thresh,
)
from stereocorr.correlation.timing import calc_seconds_per_op
from stereocorr.diagnostics import DiagnosticsSink, NullDiagnostics
from stereocorr.disparity.dem_seed import DemDisparityPredictor
from stereocorr.disparity.field import DisparityField
from stereocorr.exceptions import ConfigurationError, MissingInputError, ValidationError
from stereocorr.IO.geotiff import read_disparity, write_disparity
from stereocorr.settings import StereoSettings
from stereocorr.tiling import TileGrid
from stereocorr.vocabulary import CorrelationAlgorithm, OutlierRejection, SeedMode

logger = logging.getLogger(__name__)

# Subsampled images are sized to roughly this many pixels.
SUBSAMPLE_TARGET_PIXELS = 1500 * 1500
LOWRES_TIMEOUT_SCALE = 5.0

MatcherFactory = Callable[..., Matcher]


class SeedResult(NamedTuple):
    """Output of the low-resolution stage.

    Attributes
    ----------
    disparity : DisparityField or None
        Seed disparity in seed pixels; None when seeding is disabled.
    spread : DisparityField or None
        Per-pixel uncertainty of the seed, if any.
    search_range : SearchRange
        Global full-resolution range implied by the seed.
    """

    disparity: Optional[DisparityField]
    spread: Optional[DisparityField]
    search_range: SearchRange


def seed_paths(out_prefix: str) -> Tuple[Path, Path]:
    """Cache locations of the seed and its spread."""
    return Path(f"{out_prefix}-D_sub.tif"), Path(f"{out_prefix}-D_sub_spread.tif")


def subsample_scale(size: Tuple[int, int]) -> float:
    """Downsample factor bringing a ``(cols, rows)`` image near the target size."""
    cols, rows = size
    return min(1.0, math.sqrt(SUBSAMPLE_TARGET_PIXELS / float(cols * rows)))


def subsample_image(
    image: np.ndarray,
    mask: Optional[np.ndarray],
    scale: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Area-average an image and nearest-sample its mask.

    Parameters
    ----------
    image : np.ndarray
        Shape (rows, cols).
    mask : np.ndarray or None
        Validity mask. None means every finite pixel is valid.
    scale : float
        Output size relative to input, in ``(0, 1]``.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        float32 image and boolean mask.
    """
    if not _HAS_CV2:
        raise ImportError(
            "opencv-python-headless is required for subsampling. "
            "Install with: pip install opencv-python-headless"
        )
    if not 0 < scale <= 1:
        raise ValidationError(f"scale must be in (0, 1], got {scale}")
    valid = np.isfinite(image)
    if mask is not None:
        valid &= mask.astype(bool)
    rows, cols = image.shape
    size = (max(1, int(round(cols * scale))), max(1, int(round(rows * scale))))
    filled = np.where(valid, image, 0).astype(np.float32)
    small = cv2.resize(filled, size, interpolation=cv2.INTER_AREA)
    small_mask = cv2.resize(valid.astype(np.uint8), size, interpolation=cv2.INTER_NEAREST)
    return small, small_mask.astype(bool)


class LowResDisparityStage:
    """Compute, cache and reuse the seed disparity.

    Parameters
    ----------
    settings : StereoSettings
        Run configuration.
    matcher_factory : callable
        ``create_matcher``-compatible factory.
    diagnostics : DiagnosticsSink, optional
        Receives the raw low-resolution correlation.
    """

    def __init__(
        self,
        settings: StereoSettings,
        matcher_factory: MatcherFactory = create_matcher,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        self.settings = settings
        self.matcher_factory = matcher_factory
        self.diagnostics = diagnostics or NullDiagnostics()

    # -- policies --

    def _correlate(
        self,
        left_sub: np.ndarray,
        right_sub: np.ndarray,
        left_mask_sub: Optional[np.ndarray],
        right_mask_sub: Optional[np.ndarray],
        scale: Tuple[float, float],
        search_range: SearchRange,
    ) -> DisparityField:
        settings = self.settings
        if search_range is None or search_range.is_empty():
            raise ConfigurationError(
                "Correlation seeding needs a global search range"
            )
        sub_range = search_range.scale(scale)
        sub_range = sub_range.expand((
            math.ceil(sub_range.width * settings.seed_percent_pad / 2.0),
            math.ceil(sub_range.height * settings.seed_percent_pad / 2.0),
        ))
        logger.info("D_sub search range: %s px", sub_range)

        matcher = self.matcher_factory(
            settings,
            algorithm=CorrelationAlgorithm.WINDOW,
            timeout_scale=LOWRES_TIMEOUT_SCALE,
            blob_filter_area=0,
        )
        if settings.corr_timeout > 0:
            matcher.seconds_per_op = calc_seconds_per_op(
                matcher, left_sub, right_sub, left_mask_sub, right_mask_sub)
        field = matcher.match(left_sub, right_sub, left_mask_sub, right_mask_sub, sub_range)
        self.diagnostics.write_image('D_sub-raw', field.to_bands())
        return self.reject_outliers(field, scale)

    def reject_outliers(self, field: DisparityField, scale: Tuple[float, float]) -> DisparityField:
        """Clean a raw low-resolution correlation with the configured rule."""
        settings = self.settings
        before = field.num_valid
        if settings.outlier_rejection is OutlierRejection.QUANTILE:
            field = rm_outliers_using_quantiles(
                field, settings.rm_quantile_percentile, settings.rm_quantile_multiple)
        else:
            field = rm_outliers_using_thresh(
                field, 1, 1,
                settings.rm_threshold * 2.0 / 3.0,
                (settings.rm_min_matches / 100.0) * 0.5 / 0.6,
            )
            mean_scale = (scale[0] + scale[1]) / 2.0
            area = int(round(settings.corr_blob_filter_area * mean_scale))
            if area > 0:
                field = remove_small_blobs(field, area)
        logger.info(
            "Outlier rejection kept %d of %d seed pixels", field.num_valid, before,
        )
        return field

    def _terrain(self, cameras, elevation, sub_shape, full_size):
        if cameras is None or elevation is None:
            raise ConfigurationError(
                "Terrain seeding needs left/right camera models and an elevation model"
            )
        predictor = DemDisparityPredictor(
            cameras[0], cameras[1], elevation, self.settings.dem_error)
        return predictor.predict(sub_shape, full_size)

    # -- cache --

    def _load_cached(self, out_prefix: str):
        seed_path, spread_path = seed_paths(out_prefix)
        try:
            seed = read_disparity(seed_path)
        except MissingInputError:
            return None
        except ValidationError as e:
            logger.warning("Cached seed %s is unreadable (%s); recomputing", seed_path, e)
            return None
        spread = read_disparity(spread_path) if spread_path.exists() else None
        logger.info("Using cached low-resolution disparity: %s", seed_path)
        return seed, spread

    def _ensure_local_homographies(self, out_prefix: str, full_size: Tuple[int, int]) -> None:
        path = Path(f"{out_prefix}-local_hom.txt")
        if path.exists() and not self.settings.has_crop_override:
            return
        grid = TileGrid(full_size[0], full_size[1], self.settings.tile_size)
        LocalHomographyTable(*grid.shape).save(path)

    # -- entry point --

    def run(
        self,
        left_sub: np.ndarray,
        right_sub: np.ndarray,
        left_mask_sub: Optional[np.ndarray],
        right_mask_sub: Optional[np.ndarray],
        full_size: Tuple[int, int],
        search_range: Optional[SearchRange],
        out_prefix: str,
        cameras: Optional[Tuple] = None,
        elevation=None,
        external_seed: Optional[DisparityField] = None,
        external_spread: Optional[DisparityField] = None,
    ) -> SeedResult:
        """Produce (or reuse) the seed.

        Parameters
        ----------
        left_sub, right_sub : np.ndarray
            Subsampled images.
        left_mask_sub, right_mask_sub : np.ndarray or None
            Their validity masks.
        full_size : Tuple[int, int]
            Full-resolution left size ``(cols, rows)``.
        search_range : SearchRange or None
            Global full-resolution range.
        out_prefix : str
            Output prefix of cached artifacts.
        cameras : Tuple[CameraModel, CameraModel], optional
            Left and right camera models, for ``TERRAIN``.
        elevation : ElevationModel, optional
            Terrain heights, for ``TERRAIN``.
        external_seed, external_spread : DisparityField, optional
            Precomputed seed and spread, for ``EXTERNAL``.

        Returns
        -------
        SeedResult

        Raises
        ------
        ConfigurationError
            If the inputs a policy needs are missing or inconsistent.
        MissingInputError
            If the cached seed must be reused but does not exist.
        """
        settings = self.settings
        mode = settings.seed_mode
        if mode is SeedMode.DISABLED:
            return SeedResult(None, None, search_range)

        sub_rows, sub_cols = left_sub.shape
        scale = (sub_cols / float(full_size[0]), sub_rows / float(full_size[1]))
        seed_path, spread_path = seed_paths(out_prefix)

        cached = None
        supplied = mode is SeedMode.EXTERNAL and external_seed is not None
        if not supplied and (settings.skip_low_res_disparity_comp
                             or not settings.has_crop_override):
            cached = self._load_cached(out_prefix)
            if cached is None and settings.skip_low_res_disparity_comp:
                raise MissingInputError(
                    f"Low-resolution disparity {seed_path} is required but missing"
                )

        if cached is not None:
            seed, spread = cached
            # Modes 2 and 3 always come with a spread.
            if spread is None and mode in (SeedMode.TERRAIN, SeedMode.EXTERNAL):
                raise MissingInputError(
                    f"Seed spread {spread_path} is required for {mode.name.lower()} seeding"
                )
        else:
            spread = None
            if mode is SeedMode.CORRELATION:
                seed = self._correlate(left_sub, right_sub, left_mask_sub, right_mask_sub,
                                       scale, search_range)
            elif mode is SeedMode.TERRAIN:
                seed, spread = self._terrain(cameras, elevation, left_sub.shape, full_size)
            else:
                if external_seed is None:
                    raise ConfigurationError("External seeding needs a seed disparity")
                seed, spread = external_seed, external_spread

        if spread is not None and spread.shape != seed.shape:
            raise ConfigurationError(
                f"Seed spread shape {spread.shape} does not match seed shape {seed.shape}"
            )
        if cached is None and not supplied:
            write_disparity(seed_path, seed)
            if spread is not None:
                write_disparity(spread_path, spread, dtype=np.int32)

        found = seed.disparity_range()
        if found.is_empty():
            logger.warning("Seed disparity has no valid pixels; keeping the global range")
            global_range = search_range
        else:
            global_range = found.scale((1.0 / scale[0], 1.0 / scale[1]))
            global_range = global_range.crop(settings.search_range_limit)
            logger.info("Read search range from D_sub: %s", global_range)

        if settings.uses_piecewise_alignment:
            self._ensure_local_homographies(out_prefix, full_size)

        return SeedResult(seed, spread, global_range)
