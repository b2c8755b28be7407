# -*- coding: utf-8 -*-
"""
stereocorr Exception Hierarchy - Domain-specific exceptions for correlation runs.

Lets callers separate stereo-correlation failures from Python built-in
exceptions. Every class subclasses both ``StereoCorrError`` and the matching
built-in exception, so ``except ValueError`` keeps working.

Two families exist. Fatal errors (``ValidationError``, ``ConfigurationError``,
``MissingInputError``, ``DegenerateGeometryError``) abort a run before any
output is trusted. Recoverable errors (``FittingError`` and its
``QualityGateError`` subclass) never abort a run. The piecewise aligner
catches fitting failures and checks quality verdicts per tile, falling back to
the identity transform.

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


class StereoCorrError(Exception):
    """Base exception for all stereocorr errors."""


class ValidationError(StereoCorrError, ValueError):
    """Invalid input data, parameters, or array shapes."""


class ConfigurationError(StereoCorrError, ValueError):
    """Inconsistent configuration or mismatched artifacts.

    Raised when a seed spread does not match the seed size, or when the
    semi-global matcher is asked to process more than one tile.
    """


class MissingInputError(StereoCorrError, FileNotFoundError):
    """A required cached artifact is absent and cannot be recomputed."""


class DegenerateGeometryError(StereoCorrError, RuntimeError):
    """No usable correspondences remain after prefiltering."""


class FittingError(StereoCorrError, RuntimeError):
    """Robust model fitting or correspondence search failed.

    Recoverable: a tile that raises this falls back to identity alignment.
    """


class QualityGateError(FittingError):
    """A fitted transform pair was rejected by the quality check."""

