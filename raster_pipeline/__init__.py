#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster Processing Pipeline Package.

Loads a raster dataset, validates it, applies a configurable chain of spatial
transformations (reprojection, clipping, nodata masking, scaling) and writes
the result to a new raster file.
"""

__version__ = "0.1.0"
__author__ = "Elena Project Team"
__email__ = "user@example.com"
