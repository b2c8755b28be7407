# -*- coding: utf-8 -*-
"""
Diagnostics Sinks - Optional per-tile debug artifacts.

Per-tile crops, warped tiles, matcher results, transforms and match sets can
be handed to a ``DiagnosticsSink``. The default ``NullDiagnostics`` drops
everything. ``DirectoryDiagnostics`` writes each artifact into a directory:
arrays as ``.npy`` with a JSON sidecar holding shape, dtype and caller
metadata, match sets as binary match files, and transforms as text.

Sinks are called concurrently from tile workers. Every artifact name is
unique per tile, so ``DirectoryDiagnostics`` needs no locking.

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
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Third-party
import numpy as np

# stereocorr internal
from stereocorr.matching.correspondence import CorrespondenceSet, write_match_file


class DiagnosticsSink(ABC):
    """Receiver for debug artifacts."""

    enabled: bool = True

    @abstractmethod
    def write_image(
        self,
        name: str,
        data: np.ndarray,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    def write_matches(self, name: str, correspondences: CorrespondenceSet) -> None:
        ...

    @abstractmethod
    def write_transform(self, name: str, matrix: np.ndarray) -> None:
        ...


class NullDiagnostics(DiagnosticsSink):
    """Sink that discards everything."""

    enabled = False

    def write_image(self, name, data, metadata=None) -> None:
        pass

    def write_matches(self, name, correspondences) -> None:
        pass

    def write_transform(self, name, matrix) -> None:
        pass


def _safe_name(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', name)


class DirectoryDiagnostics(DiagnosticsSink):
    """Write debug artifacts into ``directory``.

    Parameters
    ----------
    directory : str or Path
        Output directory, created if missing.

    Examples
    --------
    >>> sink = DirectoryDiagnostics('debug')
    >>> sink.write_image('tile_0_0-left', left_crop, {'bbox': [0, 0, 512, 512]})
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def write_image(
        self,
        name: str,
        data: np.ndarray,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        filepath = self.directory / f"{_safe_name(name)}.npy"
        np.save(str(filepath), data)
        sidecar: Dict[str, Any] = {
            'shape': list(data.shape),
            'dtype': str(data.dtype),
        }
        if metadata:
            sidecar.update(metadata)
        with open(filepath.with_suffix('.npy.json'), 'w') as f:
            json.dump(sidecar, f, indent=2, default=str)

    def write_matches(self, name: str, correspondences: CorrespondenceSet) -> None:
        write_match_file(self.directory / f"{_safe_name(name)}.match", correspondences)

    def write_transform(self, name: str, matrix: np.ndarray) -> None:
        np.savetxt(self.directory / f"{_safe_name(name)}.txt", np.asarray(matrix), fmt='%.17g')
