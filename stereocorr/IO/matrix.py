# -*- coding: utf-8 -*-
"""
Matrix Files - Plain-text 3x3 alignment transforms.

Global alignment transforms (``<prefix>-align-L.txt`` and
``<prefix>-align-R.txt``) are stored as three whitespace-separated rows.

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
from typing import Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.exceptions import MissingInputError, ValidationError
from stereocorr.transforms import as_homogeneous


def write_matrix_file(filepath: Union[str, Path], matrix: np.ndarray) -> None:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(str(filepath), as_homogeneous(matrix), fmt='%.17g')


def read_matrix_file(filepath: Union[str, Path]) -> np.ndarray:
    """Read a 3x3 (or 2x3 affine) transform.

    Raises
    ------
    MissingInputError
        If the file does not exist.
    ValidationError
        If the file does not hold a 2x3 or 3x3 matrix.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise MissingInputError(f"Matrix file not found: {filepath}")
    try:
        matrix = np.loadtxt(str(filepath), dtype=np.float64, ndmin=2)
        return as_homogeneous(matrix)
    except ValueError as e:
        raise ValidationError(f"Malformed matrix file {filepath}: {e}") from e
