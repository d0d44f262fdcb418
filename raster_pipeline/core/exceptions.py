#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exception hierarchy for the raster processing pipeline.

Every error raised by the core subclasses both ``RasterPipelineError`` and the
closest built-in exception, so callers can catch pipeline failures as a group
or by their usual built-in type.
"""


class RasterPipelineError(Exception):
    """Base exception for all raster pipeline errors."""


class ConfigError(RasterPipelineError, ValueError):
    """Malformed or missing configuration.

    Raised before any raster I/O happens: empty paths, missing input file,
    inverted clip bounds, unknown resampling algorithms.
    """


class OpenError(RasterPipelineError, OSError):
    """The raster engine could not open a path as a raster dataset."""


class CreateError(RasterPipelineError, OSError):
    """The raster engine could not create a dataset.

    Raised for unknown drivers, drivers without create support, invalid
    dimensions, and disk or permission failures.
    """


class ReprojectionError(RasterPipelineError, RuntimeError):
    """Reprojection failure.

    Raised when the target CRS cannot be parsed, the source dataset has no
    projection, the destination extent cannot be computed, or the warp fails.
    """


class ClipError(RasterPipelineError, RuntimeError):
    """Clipping failure: missing geotransform or an empty/disjoint window."""


class InvalidArgument(RasterPipelineError, ValueError):
    """An operation received an argument outside its accepted domain."""


class RasterIOError(RasterPipelineError, OSError):
    """Band read/write failure or size mismatch."""
