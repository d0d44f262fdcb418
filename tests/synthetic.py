#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Synthetic rasters for the test suite.

Fixtures are written with rasterio so the code under test (GDAL bindings)
reads files it did not produce itself. rasterio writes one nodata value for
all bands, so per-band values are set afterwards through the handle.
"""
import os
from typing import Optional, Sequence

import numpy as np
import rasterio
from rasterio.transform import from_origin


def create_synthetic_raster(
    path: str,
    data: np.ndarray,
    origin: Sequence[float] = (0.0, 100.0),
    pixel_size: float = 1.0,
    crs: Optional[str] = "EPSG:4326",
    nodata: Optional[float] = None,
) -> str:
    """
    Write ``data`` as a GeoTIFF at ``path``.

    Parameters
    ----------
    path : str
        Destination file.
    data : np.ndarray
        2D array (single band) or 3D array shaped (bands, rows, cols).
    origin : sequence, optional
        (x, y) of the top-left corner, by default (0, 100).
    pixel_size : float, optional
        Square pixel size, by default 1.0.
    crs : str, optional
        CRS of the raster; None writes no projection.
    nodata : float, optional
        Nodata value recorded on every band.

    Returns
    -------
    str
        ``path``.
    """
    if data.ndim == 2:
        data = data[np.newaxis, :, :]
    band_count, rows, cols = data.shape

    profile = {
        'driver': 'GTiff',
        'width': cols,
        'height': rows,
        'count': band_count,
        'dtype': data.dtype.name,
        'transform': from_origin(origin[0], origin[1], pixel_size, pixel_size),
    }
    if crs is not None:
        profile['crs'] = crs
    if nodata is not None:
        profile['nodata'] = nodata

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with rasterio.open(path, 'w', **profile) as dst:
        dst.write(data)
    return path


def set_band_nodata(path: str, values: Sequence[float]) -> None:
    """Give each band of ``path`` its own nodata value."""
    from raster_pipeline.core.dataset import RasterHandle

    with RasterHandle.open(path, update=True) as handle:
        for band, value in enumerate(values, start=1):
            handle.set_nodata_value(band, value)


def stacked(rows: int = 100, cols: int = 100, bands: int = 3) -> np.ndarray:
    """(bands, rows, cols) array; band ``b`` holds ``gradient + 1000 * b``."""
    base = gradient(rows, cols)
    return np.stack([base + 1000.0 * b for b in range(bands)]).astype('float32')


def gradient(rows: int = 100, cols: int = 100, dtype: str = 'float32') -> np.ndarray:
    """Array whose value encodes its position: ``row * cols + col``."""
    return np.arange(rows * cols, dtype=dtype).reshape(rows, cols)


def read_raster(path: str) -> np.ndarray:
    """Read every band of ``path`` as a (bands, rows, cols) array."""
    with rasterio.open(path) as src:
        return src.read()
