# -*- coding: utf-8 -*-
"""
Geolocation - Camera models, elevation models and triangulation.

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

from stereocorr.geolocation.camera import AffineCameraModel, CameraModel

__all__ = [
    'CameraModel',
    'AffineCameraModel',
]
