#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Core functionality for the raster processing pipeline.

This package contains the raster engine wrapper, the dataset handle,
georeferencing primitives, configuration management, and logging setup.
"""
