# -*- coding: utf-8 -*-
"""
Matching - Interest point correspondences and robust model fitting.

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
