# -*- coding: utf-8 -*-
"""
Correlation - Dense matchers, cost functions and disparity filters.

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
