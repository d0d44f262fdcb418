#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Georeferencing primitives for the raster processing pipeline.

This module defines bounding boxes, affine geotransforms in GDAL coefficient
order, and the clip-window arithmetic that converts geographic bounds into a
pixel window of a raster.
"""
import math
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

from raster_pipeline.core.exceptions import ClipError


class BoundingBox(NamedTuple):
    """Axis-aligned extent in the units of a CRS."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def is_valid(self) -> bool:
        return self.min_x < self.max_x and self.min_y < self.max_y

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def intersects(self, other: "BoundingBox") -> bool:
        """True if the two boxes share an area (touching edges do not count)."""
        return (
            self.min_x < other.max_x and other.min_x < self.max_x
            and self.min_y < other.max_y and other.min_y < self.max_y
        )

    def to_dict(self) -> Dict[str, float]:
        return dict(self._asdict())

    @classmethod
    def from_points(cls, points: Iterable[Tuple[float, float]]) -> "BoundingBox":
        """Smallest box enclosing ``points``."""
        xs, ys = zip(*points)
        return cls(min(xs), min(ys), max(xs), max(ys))

    @classmethod
    def from_value(cls, value: Any) -> "BoundingBox":
        """
        Build a box from a mapping or a 4-element sequence.

        Mappings use the keys ``min_x``, ``min_y``, ``max_x`` and ``max_y``;
        sequences are ordered ``[min_x, min_y, max_x, max_y]``.
        """
        if isinstance(value, BoundingBox):
            return value
        if isinstance(value, dict):
            return cls(*(float(value[key]) for key in cls._fields))
        values = [float(v) for v in value]
        if len(values) != 4:
            raise ValueError(f"expected 4 values, got {len(values)}")
        return cls(*values)


class GeoTransform(NamedTuple):
    """
    Affine mapping between pixel (col, row) and geographic (x, y).

    Coefficients follow GDAL's order, so a ``GeoTransform`` can be passed
    straight to ``SetGeoTransform`` and built from ``GetGeoTransform()``::

        x = origin_x + col * pixel_width + row * row_rotation
        y = origin_y + col * col_rotation + row * pixel_height

    ``pixel_height`` is negative for north-up rasters.
    """

    origin_x: float
    pixel_width: float
    row_rotation: float
    origin_y: float
    col_rotation: float
    pixel_height: float

    @property
    def is_north_up(self) -> bool:
        return self.row_rotation == 0.0 and self.col_rotation == 0.0 and self.pixel_height < 0

    @property
    def determinant(self) -> float:
        return self.pixel_width * self.pixel_height - self.row_rotation * self.col_rotation

    def pixel_to_geo(self, col: float, row: float) -> Tuple[float, float]:
        x = self.origin_x + col * self.pixel_width + row * self.row_rotation
        y = self.origin_y + col * self.col_rotation + row * self.pixel_height
        return x, y

    def geo_to_pixel(self, x: float, y: float) -> Tuple[float, float]:
        """Fractional (col, row) of a geographic coordinate."""
        det = self.determinant
        if det == 0.0:
            raise ClipError("Geotransform is degenerate and cannot be inverted")
        dx = x - self.origin_x
        dy = y - self.origin_y
        col = (dx * self.pixel_height - dy * self.row_rotation) / det
        row = (dy * self.pixel_width - dx * self.col_rotation) / det
        return col, row

    def shifted(self, col_offset: int, row_offset: int) -> "GeoTransform":
        """Same grid with its origin moved to pixel (col_offset, row_offset)."""
        origin_x, origin_y = self.pixel_to_geo(col_offset, row_offset)
        return self._replace(origin_x=origin_x, origin_y=origin_y)

    def bounds(self, width: int, height: int) -> BoundingBox:
        """
        Extent of a ``width`` x ``height`` raster on this grid.

        Uses the origin and pixel sizes only; rotation terms are ignored.
        """
        max_x = self.origin_x + width * self.pixel_width
        min_y = self.origin_y + height * self.pixel_height
        return BoundingBox(
            min(self.origin_x, max_x), min(self.origin_y, min_y),
            max(self.origin_x, max_x), max(self.origin_y, min_y),
        )

    @classmethod
    def from_gdal(cls, coefficients: Optional[Iterable[float]]) -> Optional["GeoTransform"]:
        if coefficients is None:
            return None
        return cls(*(float(c) for c in coefficients))


class ClipWindow(NamedTuple):
    """Pixel window of a raster: offsets and sizes in pixels."""

    x_off: int
    y_off: int
    x_size: int
    y_size: int

    @property
    def pixel_count(self) -> int:
        return self.x_size * self.y_size


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def calculate_clip_window(
    geo_transform: Optional[GeoTransform],
    width: int,
    height: int,
    bounds: BoundingBox,
) -> ClipWindow:
    """
    Convert geographic bounds into a pixel window of a raster.

    Parameters
    ----------
    geo_transform : GeoTransform or None
        Geotransform of the raster.
    width, height : int
        Raster size in pixels.
    bounds : BoundingBox
        Requested bounds in the raster's CRS.

    Returns
    -------
    ClipWindow
        Window clamped to the raster extent, at least one pixel in each
        dimension.

    Raises
    ------
    ClipError
        If the geotransform is missing or degenerate, or the bounds do not
        overlap the raster at all.

    Notes
    -----
    Rows grow downward while Y grows upward, hence the ``origin_y - y``
    terms. Partial overlap is clamped, not rejected.
    """
    if geo_transform is None:
        raise ClipError("Dataset has no geotransform information")
    if width <= 0 or height <= 0:
        raise ClipError(f"Cannot clip a raster of size {width}x{height}")

    pixel_width = geo_transform.pixel_width
    pixel_height = abs(geo_transform.pixel_height)
    origin_x = geo_transform.origin_x
    origin_y = geo_transform.origin_y
    if pixel_width == 0.0 or pixel_height == 0.0:
        raise ClipError("Geotransform has a zero pixel size")

    extent = geo_transform.bounds(width, height)
    if not extent.intersects(bounds):
        raise ClipError(
            f"Clip bounds {tuple(bounds)} do not overlap the raster extent {tuple(extent)}"
        )

    x_off = math.floor((bounds.min_x - origin_x) / pixel_width)
    y_off = math.floor((origin_y - bounds.max_y) / pixel_height)
    x_max = math.floor((bounds.max_x - origin_x) / pixel_width)
    y_max = math.floor((origin_y - bounds.min_y) / pixel_height)

    x_size = x_max - x_off
    y_size = y_max - y_off

    x_off = _clamp(x_off, 0, width - 1)
    y_off = _clamp(y_off, 0, height - 1)
    x_size = _clamp(x_size, 1, width - x_off)
    y_size = _clamp(y_size, 1, height - y_off)

    if x_size <= 0 or y_size <= 0:
        raise ClipError(f"Clip window has zero extent: {x_size}x{y_size}")

    return ClipWindow(x_off, y_off, x_size, y_size)
