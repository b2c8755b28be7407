# -*- coding: utf-8 -*-
"""
Stereo Settings - Validated configuration for a correlation run.

``StereoSettings`` collects every option recognized by the seeded,
tile-parallel correlator. Options are declared with ``typing.Annotated``
markers (see ``stereocorr.params``) so that ranges and choices are checked
at construction. Settings can be loaded from a plain dict or a JSON file,
where enum options are given by value (``"affineepipolar"``) and boxes as
4-element lists ``[min_x, min_y, max_x, max_y]``.

Examples
--------
>>> from stereocorr.settings import StereoSettings
>>> settings = StereoSettings(alignment_method='homography', num_threads=8)
>>> settings.alignment_method
<AlignmentMethod.HOMOGRAPHY: 'homography'>

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
import json
import math
from pathlib import Path
from typing import Annotated, Any, Dict, Union

# stereocorr internal
from stereocorr.bbox import BBox, SearchRange
from stereocorr.exceptions import ValidationError
from stereocorr.params import Desc, Range, Tunable
from stereocorr.vocabulary import (
    AlignmentMethod,
    CorrelationAlgorithm,
    CostFunction,
    FeatureMethod,
    OutlierRejection,
    PrefilterMode,
    SeedMode,
)

TILE_MULTIPLE = 16


class StereoSettings(Tunable):
    """All options of a seeded, tile-parallel correlation run.

    Box-valued options (``search_range``, ``search_range_limit``,
    ``elevation_limit``, ``lon_lat_limit`` and the crop windows) default to
    ``None``, meaning "not set".

    Raises
    ------
    TypeError
        If an option has the wrong type.
    ValueError
        If an option is out of range or inconsistent.
    """

    # -- stage control --
    seed_mode: Annotated[SeedMode, Desc('How the low-resolution seed is produced')] = SeedMode.CORRELATION
    skip_low_res_disparity_comp: Annotated[bool, Desc('Reuse the existing seed without recomputing')] = False
    compute_low_res_disparity_only: Annotated[bool, Desc('Stop after the low-resolution stage')] = False

    # -- matcher --
    correlation_algorithm: Annotated[CorrelationAlgorithm, Desc('Window correlation or SGM')] = CorrelationAlgorithm.WINDOW
    cost_function: Annotated[CostFunction, Desc('Per-pixel matching cost')] = CostFunction.ABSOLUTE_DIFFERENCE
    kernel_size: Annotated[tuple, Desc('Correlation window (width, height), odd')] = (21, 21)
    prefilter_mode: Annotated[PrefilterMode, Desc('Image prefilter')] = PrefilterMode.LOG
    prefilter_sigma: Annotated[float, Range(min=0.0), Desc('Prefilter Gaussian sigma')] = 1.4
    xcorr_threshold: Annotated[float, Desc('Left/right consistency tolerance, negative disables')] = 2.0
    ternary_census_threshold: Annotated[float, Range(min=0.0), Desc('Ternary census dead band')] = 0.0
    corr_timeout: Annotated[float, Range(min=0.0), Desc('Soft per-tile time budget in seconds, 0 disables')] = 0.0
    corr_blob_filter_area: Annotated[int, Range(min=0), Desc('Remove valid islands below this area')] = 0
    sgm_p1: Annotated[int, Range(min=0), Desc('SGM small-change penalty, 0 picks a default')] = 0
    sgm_p2: Annotated[int, Range(min=0), Desc('SGM large-change penalty, 0 picks a default')] = 0

    # -- search range --
    search_range: Annotated[tuple, Desc('Search range override (min_x, min_y, max_x, max_y)')] = None
    search_range_limit: Annotated[tuple, Desc('Hard limit applied to every derived range')] = None

    # -- tiling --
    corr_tile_size: Annotated[int, Range(min=16), Desc('Output tile size in pixels')] = 1024
    num_threads: Annotated[int, Range(min=1, max=256), Desc('Tile worker threads')] = 4

    # -- low-resolution seed --
    seed_percent_pad: Annotated[float, Range(min=0.0), Desc('Low-res search range padding fraction')] = 0.25
    outlier_rejection: Annotated[OutlierRejection, Desc('Seed outlier rejection rule')] = OutlierRejection.THRESHOLD
    rm_threshold: Annotated[float, Range(min=0.0), Desc('Neighbor disparity tolerance')] = 3.0
    rm_min_matches: Annotated[float, Range(min=0.0, max=100.0), Desc('Percent of agreeing neighbors')] = 60.0
    rm_quantile_percentile: Annotated[float, Range(min=0.5, max=1.0), Desc('Upper quantile')] = 0.85
    rm_quantile_multiple: Annotated[float, Range(min=0.0), Desc('Interquantile multiple')] = 3.0
    dem_error: Annotated[float, Range(min=0.0), Desc('Terrain seed height uncertainty (m)')] = 5.0

    # -- correspondences --
    feature_method: Annotated[FeatureMethod, Desc('Keypoint detector')] = FeatureMethod.ORB
    ip_per_tile: Annotated[int, Range(min=0), Desc('Features per 1024x1024 area, 0 is automatic')] = 0
    ip_inlier_factor: Annotated[float, Range(min=0.0), Desc('Global inlier threshold factor')] = 1.0 / 15.0
    elevation_limit: Annotated[tuple, Desc('Allowed triangulated heights (min, max)')] = None
    lon_lat_limit: Annotated[tuple, Desc('Allowed (min_lon, min_lat, max_lon, max_lat)')] = None

    # -- piecewise alignment --
    alignment_method: Annotated[AlignmentMethod, Desc('Per-tile alignment strategy')] = AlignmentMethod.NONE
    piecewise_min_improvement: Annotated[float, Range(min=0.0), Desc('avgDeltaY below which alignment is skipped')] = 3.0
    piecewise_ransac_threshold: Annotated[float, Range(min=0.0), Desc('RANSAC inlier distance for alignment')] = 3.0
    piecewise_match_threshold: Annotated[float, Range(min=0.0), Desc('Gross mismatch threshold of the matcher')] = 20.0
    piecewise_margin: Annotated[int, Range(min=0), Desc('Tile expansion margin for alignment')] = 50
    piecewise_search_multiplier: Annotated[float, Range(min=1.0), Desc('Tightened range multiplier')] = 2.0
    ransac_iterations: Annotated[int, Range(min=1), Desc('RANSAC trials')] = 200
    random_seed: Annotated[int, Desc('Seed of the RANSAC random generator')] = None

    # -- crop windows --
    left_image_crop_win: Annotated[tuple, Desc('Left crop window (min_x, min_y, max_x, max_y)')] = None
    right_image_crop_win: Annotated[tuple, Desc('Right crop window')] = None
    trans_crop_win: Annotated[tuple, Desc('Restrict full-resolution processing to this window')] = None

    def __post_init__(self) -> None:
        if len(self.kernel_size) != 2 or any(
            int(k) != k or k < 1 or k % 2 == 0 for k in self.kernel_size
        ):
            raise ValidationError(
                f"kernel_size must be two odd positive integers, got {self.kernel_size!r}"
            )
        self.kernel_size = (int(self.kernel_size[0]), int(self.kernel_size[1]))
        self.search_range = SearchRange.coerce(self.search_range)
        self.search_range_limit = SearchRange.coerce(self.search_range_limit)
        for name in ('left_image_crop_win', 'right_image_crop_win', 'trans_crop_win'):
            value = getattr(self, name)
            if value is not None:
                if len(value) != 4:
                    raise ValidationError(f"{name} needs 4 values, got {value!r}")
                setattr(self, name, BBox(*(int(v) for v in value)))
        if self.elevation_limit is not None and len(self.elevation_limit) != 2:
            raise ValidationError(
                f"elevation_limit needs (min, max), got {self.elevation_limit!r}"
            )
        if self.lon_lat_limit is not None and len(self.lon_lat_limit) != 4:
            raise ValidationError(
                f"lon_lat_limit needs 4 values, got {self.lon_lat_limit!r}"
            )

    # -- derived values --

    @property
    def tile_size(self) -> int:
        """``corr_tile_size`` rounded up to a multiple of 16."""
        return int(math.ceil(self.corr_tile_size / TILE_MULTIPLE) * TILE_MULTIPLE)

    @property
    def uses_piecewise_alignment(self) -> bool:
        return self.alignment_method is not AlignmentMethod.NONE

    @property
    def uses_sgm(self) -> bool:
        return self.correlation_algorithm is CorrelationAlgorithm.SGM

    @property
    def has_crop_override(self) -> bool:
        """Whether a crop window makes cached artifacts stale."""
        return (self.left_image_crop_win is not None
                or self.right_image_crop_win is not None)

    @property
    def worker_count(self) -> int:
        """Tile workers. SGM is multi-threaded internally and runs one tile."""
        return 1 if self.uses_sgm else self.num_threads

    # -- construction helpers --

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'StereoSettings':
        return cls(**values)

    @classmethod
    def from_json(cls, filepath: Union[str, Path]) -> 'StereoSettings':
        """Load settings from a JSON object file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValidationError
            If the file does not hold a JSON object.
        """
        with open(filepath, 'r') as f:
            values = json.load(f)
        if not isinstance(values, dict):
            raise ValidationError(
                f"Settings file {filepath} must contain a JSON object"
            )
        return cls.from_dict(values)

    def to_json(self, filepath: Union[str, Path]) -> None:
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def replace(self, **overrides: Any) -> 'StereoSettings':
        """Copy with some options changed."""
        values = self.to_dict()
        values.update(overrides)
        return type(self).from_dict(values)
