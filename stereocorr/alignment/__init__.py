# -*- coding: utf-8 -*-
"""
Alignment - Per-tile piecewise realignment of stereo tiles.

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
