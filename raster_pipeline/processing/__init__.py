#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Processing modules for raster data.

This package contains the transform chain (reprojection, clipping, masking,
scaling) and the pipeline state machine that drives it.
"""
