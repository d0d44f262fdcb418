#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster dataset handle for the raster processing pipeline.

``RasterHandle`` owns exactly one open GDAL dataset and exposes its pixel
grid, geotransform, projection, per-band data and nodata values. The handle
is the only owner of its dataset: it cannot be copied, and the dataset is
released when the handle is closed or leaves a ``with`` block.
"""
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
from osgeo import gdal

from raster_pipeline.core.engine import get_engine
from raster_pipeline.core.geo import BoundingBox, GeoTransform
from raster_pipeline.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

_EMPTY = np.empty(0, dtype=np.float64)


class RasterHandle:
    """
    Exclusive handle to one open raster dataset.

    Parameters
    ----------
    dataset : gdal.Dataset
        Open GDAL dataset; the handle takes ownership.
    path : str, optional
        Location of the dataset, used for logging and release callbacks.
    writable : bool, optional
        Whether the dataset was opened or created for writing.
    on_close : callable, optional
        Called with ``path`` after the dataset has been released.

    Notes
    -----
    Use ``RasterHandle.open`` and ``RasterHandle.create`` rather than the
    constructor.
    """

    def __init__(self, dataset: gdal.Dataset, path: str = "", writable: bool = False,
                 on_close: Optional[Callable[[str], None]] = None):
        self._dataset = dataset
        self.path = path
        self.writable = writable
        self._on_close = on_close

    @classmethod
    def open(cls, path: str, update: bool = False) -> "RasterHandle":
        """
        Open an existing raster.

        Raises
        ------
        OpenError
            If the path is missing, unreadable, or not a recognized raster.
        """
        dataset = get_engine().open(path, update=update)
        logger.debug(f"Opened {path} ({'update' if update else 'read-only'})")
        return cls(dataset, path=path, writable=update)

    @classmethod
    def create(cls, path: str, driver_name: str, width: int, height: int,
               band_count: int, data_type: int = gdal.GDT_Float64,
               options: Optional[List[str]] = None,
               on_close: Optional[Callable[[str], None]] = None) -> "RasterHandle":
        """
        Create a new dataset opened for writing.

        Raises
        ------
        CreateError
            If the driver is unknown or creation fails.
        """
        dataset = get_engine().create(path, driver_name, width, height, band_count,
                                      data_type, options)
        logger.debug(f"Created {driver_name} dataset {path} ({width}x{height}, {band_count} bands)")
        return cls(dataset, path=path, writable=True, on_close=on_close)

    # Ownership

    def __copy__(self):
        raise TypeError("RasterHandle owns its dataset and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("RasterHandle owns its dataset and cannot be copied")

    def __enter__(self) -> "RasterHandle":
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.close()

    def __del__(self):
        # Interpreter shutdown may have torn down gdal already
        try:
            self.close()
        except (AttributeError, TypeError, RuntimeError):
            pass

    def __repr__(self) -> str:
        if not self.is_valid:
            return f"RasterHandle(path={self.path!r}, closed)"
        return (f"RasterHandle(path={self.path!r}, size={self.width}x{self.height}, "
                f"bands={self.band_count}, writable={self.writable})")

    @property
    def is_valid(self) -> bool:
        return self._dataset is not None

    @property
    def dataset(self) -> Optional[gdal.Dataset]:
        """Underlying GDAL dataset, for passing to engine primitives."""
        return self._dataset

    def flush(self) -> None:
        if self._dataset is not None:
            self._dataset.FlushCache()

    def close(self) -> None:
        """Release the dataset. Safe to call more than once."""
        if self._dataset is None:
            return
        if self.writable:
            self._dataset.FlushCache()
        self._dataset = None
        if self._on_close is not None:
            callback, self._on_close = self._on_close, None
            callback(self.path)

    # Geometry

    @property
    def width(self) -> int:
        return self._dataset.RasterXSize if self._dataset is not None else 0

    @property
    def height(self) -> int:
        return self._dataset.RasterYSize if self._dataset is not None else 0

    @property
    def band_count(self) -> int:
        return self._dataset.RasterCount if self._dataset is not None else 0

    @property
    def driver_name(self) -> str:
        if self._dataset is None:
            return ""
        return self._dataset.GetDriver().ShortName

    def band_data_type(self, band: int) -> int:
        if not self._valid_band(band):
            return gdal.GDT_Unknown
        return self._dataset.GetRasterBand(band).DataType

    @property
    def data_type(self) -> int:
        """Data type of the first band (``GDT_Unknown`` without bands)."""
        return self.band_data_type(1)

    @property
    def data_type_name(self) -> str:
        return gdal.GetDataTypeName(self.data_type) or "Unknown"

    def _valid_band(self, band: int) -> bool:
        return self._dataset is not None and 1 <= band <= self.band_count

    def _valid_window(self, x_off: int, y_off: int, x_size: int, y_size: int) -> bool:
        return (
            x_off >= 0 and y_off >= 0 and x_size > 0 and y_size > 0
            and x_off + x_size <= self.width and y_off + y_size <= self.height
        )

    # Band I/O

    def read_band(self, band: int, x_off: int = 0, y_off: int = 0,
                  x_size: Optional[int] = None, y_size: Optional[int] = None) -> np.ndarray:
        """
        Read a window of one band.

        Parameters
        ----------
        band : int
            1-based band index.
        x_off, y_off : int, optional
            Window offset in pixels.
        x_size, y_size : int, optional
            Window size; defaults to the remainder of the raster.

        Returns
        -------
        np.ndarray
            Flat, row-major float64 array of length ``x_size * y_size``, or an
            empty array if the band or window is invalid.
        """
        if not self._valid_band(band):
            logger.debug(f"Band {band} out of range for {self.path}")
            return _EMPTY.copy()
        x_size = self.width - x_off if x_size is None else x_size
        y_size = self.height - y_off if y_size is None else y_size
        if not self._valid_window(x_off, y_off, x_size, y_size):
            logger.debug(f"Invalid read window {(x_off, y_off, x_size, y_size)} for {self.path}")
            return _EMPTY.copy()

        try:
            data = self._dataset.GetRasterBand(band).ReadAsArray(x_off, y_off, x_size, y_size)
        except RuntimeError as e:
            logger.error(f"Failed to read band {band} of {self.path}: {e}")
            return _EMPTY.copy()
        if data is None:
            return _EMPTY.copy()
        return np.asarray(data, dtype=np.float64).ravel()

    def write_band(self, band: int, data: Union[np.ndarray, Sequence[float]],
                   x_off: int = 0, y_off: int = 0,
                   x_size: Optional[int] = None, y_size: Optional[int] = None) -> bool:
        """
        Write a window of one band from a flat row-major sequence.

        Returns
        -------
        bool
            False if the handle is read-only, the band or window is invalid,
            or ``len(data) != x_size * y_size``.
        """
        if not self.writable:
            logger.error(f"Cannot write to read-only dataset {self.path}")
            return False
        if not self._valid_band(band):
            return False
        x_size = self.width - x_off if x_size is None else x_size
        y_size = self.height - y_off if y_size is None else y_size
        if not self._valid_window(x_off, y_off, x_size, y_size):
            return False

        values = np.asarray(data, dtype=np.float64).ravel()
        if values.size != x_size * y_size:
            logger.error(f"Band {band} write size mismatch: got {values.size} values, "
                         f"expected {x_size * y_size}")
            return False

        try:
            err = self._dataset.GetRasterBand(band).WriteArray(
                values.reshape(y_size, x_size), x_off, y_off
            )
        except RuntimeError as e:
            logger.error(f"Failed to write band {band} of {self.path}: {e}")
            return False
        return err == gdal.CE_None

    # Metadata

    def get_geo_transform(self) -> Optional[GeoTransform]:
        """Geotransform of the dataset, or None if it has none."""
        if self._dataset is None:
            return None
        return GeoTransform.from_gdal(self._dataset.GetGeoTransform(can_return_null=True))

    def set_geo_transform(self, geo_transform: Optional[Sequence[float]]) -> None:
        if self._dataset is None or not self.writable or geo_transform is None:
            return
        self._dataset.SetGeoTransform([float(c) for c in geo_transform])

    def get_projection(self) -> str:
        """Projection as WKT, or an empty string."""
        if self._dataset is None:
            return ""
        return self._dataset.GetProjection() or ""

    def set_projection(self, projection: str) -> None:
        if self._dataset is None or not self.writable or not projection:
            return
        self._dataset.SetProjection(projection)

    def get_nodata_value(self, band: int = 1) -> Optional[float]:
        """Nodata value of ``band``, or None when the band has none."""
        if not self._valid_band(band):
            return None
        return self._dataset.GetRasterBand(band).GetNoDataValue()

    def set_nodata_value(self, band: int, value: Optional[float]) -> None:
        if not self.writable or not self._valid_band(band) or value is None:
            return
        self._dataset.GetRasterBand(band).SetNoDataValue(float(value))

    def get_bounds(self) -> Optional[BoundingBox]:
        """
        Extent derived from the geotransform and raster size.

        ``min_x = origin_x``, ``max_x = origin_x + width * pixel_width``,
        ``max_y = origin_y``, ``min_y = origin_y + height * pixel_height``.
        """
        geo_transform = self.get_geo_transform()
        if geo_transform is None or not self.is_valid:
            return None
        return BoundingBox(
            geo_transform.origin_x,
            geo_transform.origin_y + self.height * geo_transform.pixel_height,
            geo_transform.origin_x + self.width * geo_transform.pixel_width,
            geo_transform.origin_y,
        )
