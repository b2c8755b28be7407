# -*- coding: utf-8 -*-
"""
Disparity - Disparity fields, search range estimation and seeding.

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
