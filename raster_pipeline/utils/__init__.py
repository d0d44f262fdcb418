#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility modules for the raster processing pipeline.

This package contains dataset description and metadata export helpers and
general-purpose functions such as timing decorators.
"""
