# -*- coding: utf-8 -*-
"""
Matcher Factory - Build the configured matcher from settings.

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
from typing import Optional

# stereocorr internal
from stereocorr.correlation.base import Matcher
from stereocorr.settings import StereoSettings
from stereocorr.vocabulary import CorrelationAlgorithm


def create_matcher(
    settings: StereoSettings,
    algorithm: Optional[CorrelationAlgorithm] = None,
    timeout_scale: float = 1.0,
    blob_filter_area: Optional[int] = None,
    seconds_per_op: Optional[float] = None,
) -> Matcher:
    """Instantiate the matcher described by ``settings``.

    Parameters
    ----------
    settings : StereoSettings
        Run configuration.
    algorithm : CorrelationAlgorithm, optional
        Override of ``settings.correlation_algorithm``.
    timeout_scale : float
        Multiplier applied to ``settings.corr_timeout``.
    blob_filter_area : int, optional
        Override of ``settings.corr_blob_filter_area``.
    seconds_per_op : float, optional
        Calibrated per-operation cost for the time budget.
    """
    algorithm = algorithm or settings.correlation_algorithm
    blob_area = settings.corr_blob_filter_area if blob_filter_area is None else blob_filter_area
    timeout = settings.corr_timeout * timeout_scale

    if algorithm is CorrelationAlgorithm.SGM:
        from stereocorr.correlation.sgm import SemiGlobalMatcher
        return SemiGlobalMatcher(
            block_size=settings.kernel_size[0],
            p1=settings.sgm_p1,
            p2=settings.sgm_p2,
            xcorr_threshold=settings.xcorr_threshold,
            blob_filter_area=blob_area,
            timeout=timeout,
            seconds_per_op=seconds_per_op,
        )

    from stereocorr.correlation.window import WindowMatcher
    return WindowMatcher(
        kernel_size=settings.kernel_size,
        cost_function=settings.cost_function,
        prefilter_mode=settings.prefilter_mode,
        prefilter_sigma=settings.prefilter_sigma,
        xcorr_threshold=settings.xcorr_threshold,
        blob_filter_area=blob_area,
        ternary_census_threshold=settings.ternary_census_threshold,
        timeout=timeout,
        seconds_per_op=seconds_per_op,
    )
