#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Coordinate reference system helpers.

Parses user-supplied CRS strings into canonical WKT and transforms points and
bounding boxes between CRSs using GDAL's ``osr`` module. Axis order is always
traditional GIS order (x = easting/longitude, y = northing/latitude).
"""
import math
from typing import Tuple

from osgeo import osr

from raster_pipeline.core.engine import get_engine
from raster_pipeline.core.exceptions import ReprojectionError
from raster_pipeline.core.geo import BoundingBox


def _spatial_reference(crs: str) -> osr.SpatialReference:
    get_engine()
    if not crs or not crs.strip():
        raise ReprojectionError("Empty CRS definition")

    srs = osr.SpatialReference()
    try:
        err = srs.SetFromUserInput(crs)
    except RuntimeError as e:
        raise ReprojectionError(f"Failed to parse CRS '{crs}': {e}") from e
    if err != 0:
        raise ReprojectionError(f"Failed to parse CRS '{crs}'")
    srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
    return srs


def parse_crs(crs: str) -> str:
    """
    Convert a user-supplied CRS (EPSG code, PROJ string, WKT) to WKT.

    Raises
    ------
    ReprojectionError
        If GDAL cannot interpret ``crs``.
    """
    return _spatial_reference(crs).ExportToWkt()


def same_crs(first: str, second: str) -> bool:
    """True if both definitions describe the same CRS."""
    if not first or not second:
        return False
    try:
        return bool(_spatial_reference(first).IsSame(_spatial_reference(second)))
    except ReprojectionError:
        return False


def create_transform(source_crs: str, target_crs: str) -> osr.CoordinateTransformation:
    """Build a coordinate transformation from ``source_crs`` to ``target_crs``."""
    source = _spatial_reference(source_crs)
    target = _spatial_reference(target_crs)
    try:
        return osr.CoordinateTransformation(source, target)
    except RuntimeError as e:
        raise ReprojectionError(
            f"Failed to create coordinate transformation: {e}"
        ) from e


def transform_point(
    transform: osr.CoordinateTransformation, x: float, y: float
) -> Tuple[float, float]:
    try:
        tx, ty, _ = transform.TransformPoint(x, y)
    except RuntimeError as e:
        raise ReprojectionError(f"Failed to transform point ({x}, {y}): {e}") from e
    if not (math.isfinite(tx) and math.isfinite(ty)):
        raise ReprojectionError(f"Point ({x}, {y}) has no finite image in the target CRS")
    return tx, ty


def transform_bounds(bounds: BoundingBox, source_crs: str, target_crs: str,
                     densify: int = 21) -> BoundingBox:
    """
    Reproject a bounding box.

    Samples ``densify`` points along each edge so curved edges in the target
    CRS stay inside the returned box.
    """
    transform = create_transform(source_crs, target_crs)

    steps = max(densify, 2) - 1
    points = []
    for i in range(steps + 1):
        fx = bounds.min_x + bounds.width * i / steps
        fy = bounds.min_y + bounds.height * i / steps
        points.extend([
            (fx, bounds.min_y), (fx, bounds.max_y),
            (bounds.min_x, fy), (bounds.max_x, fy),
        ])
    return BoundingBox.from_points(transform_point(transform, x, y) for x, y in points)
