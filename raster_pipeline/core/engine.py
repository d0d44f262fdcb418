#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Raster engine for the raster processing pipeline.

Wraps the GDAL primitives the pipeline needs (open, create, warp, delete)
behind a single process-wide object. GDAL driver registration and exception
mode are set up once, the first time the engine is requested.
"""
import os
from typing import List, Optional, Sequence, Tuple

from osgeo import gdal, osr

from raster_pipeline.core.exceptions import CreateError, OpenError, ReprojectionError
from raster_pipeline.core.geo import GeoTransform
from raster_pipeline.core.logging_config import GDAL_LOGGER_NAME, get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

RESAMPLE_ALGORITHMS = {
    "near": gdal.GRA_NearestNeighbour,
    "bilinear": gdal.GRA_Bilinear,
    "cubic": gdal.GRA_Cubic,
    "cubicspline": gdal.GRA_CubicSpline,
    "lanczos": gdal.GRA_Lanczos,
    "average": gdal.GRA_Average,
    "mode": gdal.GRA_Mode,
}


class RasterEngine:
    """
    Process-wide access point to GDAL.

    Use ``get_engine()`` rather than instantiating this class directly.
    """

    _instance: Optional["RasterEngine"] = None

    def __init__(self):
        gdal.UseExceptions()
        osr.UseExceptions()
        gdal.AllRegister()
        gdal.ConfigurePythonLogging(logger_name=GDAL_LOGGER_NAME)
        logger.debug(f"GDAL {self.version()} initialized with {gdal.GetDriverCount()} drivers")

    @classmethod
    def instance(cls) -> "RasterEngine":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @staticmethod
    def version() -> str:
        return gdal.VersionInfo("RELEASE_NAME")

    def driver(self, name: str) -> Optional[gdal.Driver]:
        return gdal.GetDriverByName(name) if name else None

    def can_create(self, name: str) -> bool:
        driver = self.driver(name)
        return driver is not None and driver.GetMetadataItem(gdal.DCAP_CREATE) == "YES"

    def can_create_copy(self, name: str) -> bool:
        driver = self.driver(name)
        return driver is not None and driver.GetMetadataItem(gdal.DCAP_CREATECOPY) == "YES"

    def open(self, path: str, update: bool = False) -> gdal.Dataset:
        """
        Open an existing raster dataset.

        Raises
        ------
        OpenError
            If the path is missing, unreadable, or not a raster.
        """
        if not path or not os.path.exists(path):
            raise OpenError(f"Raster file not found: {path}")

        mode = gdal.GA_Update if update else gdal.GA_ReadOnly
        try:
            dataset = gdal.Open(path, mode)
        except RuntimeError as e:
            raise OpenError(f"Failed to open raster {path}: {e}") from e
        if dataset is None:
            raise OpenError(f"Failed to open raster: {path}")
        return dataset

    def create(
        self,
        path: str,
        driver_name: str,
        width: int,
        height: int,
        band_count: int,
        data_type: int,
        options: Optional[List[str]] = None,
    ) -> gdal.Dataset:
        """
        Create a new dataset with the requested geometry.

        Raises
        ------
        CreateError
            If the driver is unknown or cannot create datasets, the size is
            invalid, or GDAL fails to create the file.
        """
        driver = self.driver(driver_name)
        if driver is None:
            raise CreateError(f"Unknown raster driver: {driver_name}")
        if not self.can_create(driver_name):
            raise CreateError(f"Driver {driver_name} does not support direct creation")
        if width <= 0 or height <= 0 or band_count < 0:
            raise CreateError(
                f"Invalid dataset geometry: {width}x{height} with {band_count} bands"
            )

        try:
            dataset = driver.Create(path, width, height, band_count, data_type,
                                    options=options or [])
        except RuntimeError as e:
            raise CreateError(f"Failed to create {driver_name} dataset {path}: {e}") from e
        if dataset is None:
            raise CreateError(f"Failed to create {driver_name} dataset: {path}")
        return dataset

    def create_copy(
        self,
        path: str,
        driver_name: str,
        source: gdal.Dataset,
        options: Optional[List[str]] = None,
    ) -> gdal.Dataset:
        """Write ``source`` to ``path`` with a driver that only supports CreateCopy."""
        driver = self.driver(driver_name)
        if driver is None:
            raise CreateError(f"Unknown raster driver: {driver_name}")
        try:
            dataset = driver.CreateCopy(path, source, 0, options=options or [])
        except RuntimeError as e:
            raise CreateError(f"Failed to write {driver_name} dataset {path}: {e}") from e
        if dataset is None:
            raise CreateError(f"Failed to write {driver_name} dataset: {path}")
        return dataset

    def delete(self, path: str, driver_name: Optional[str] = None) -> None:
        """Remove a dataset and its sidecar files, if present."""
        if not path or not os.path.exists(path):
            return
        driver = self.driver(driver_name) if driver_name else None
        try:
            if driver is not None:
                driver.Delete(path)
                return
        except RuntimeError as e:
            logger.debug(f"Driver delete failed for {path}, removing file directly: {e}")
        os.remove(path)
        aux_path = f"{path}.aux.xml"
        if os.path.exists(aux_path):
            os.remove(aux_path)

    def suggest_warp_output(
        self,
        source: gdal.Dataset,
        src_wkt: str,
        dst_wkt: str,
        resample_alg: str = "near",
    ) -> Tuple[GeoTransform, int, int]:
        """
        Compute the destination grid of a warp.

        Returns the geotransform and size of the smallest axis-aligned raster
        in ``dst_wkt`` that covers the reprojected extent of ``source``.

        Raises
        ------
        ReprojectionError
            If GDAL cannot build the coordinate transformation or the
            suggested output.
        """
        try:
            vrt = gdal.AutoCreateWarpedVRT(
                source, src_wkt, dst_wkt, RESAMPLE_ALGORITHMS[resample_alg], 0.0
            )
        except (RuntimeError, KeyError) as e:
            raise ReprojectionError(f"Failed to determine output dimensions: {e}") from e
        if vrt is None:
            raise ReprojectionError("Failed to determine output dimensions")

        try:
            geo_transform = GeoTransform.from_gdal(vrt.GetGeoTransform())
            width, height = vrt.RasterXSize, vrt.RasterYSize
        finally:
            vrt = None

        if width <= 0 or height <= 0:
            raise ReprojectionError(f"Suggested warp output is empty: {width}x{height}")
        return geo_transform, width, height

    def warp(
        self,
        source: gdal.Dataset,
        destination: gdal.Dataset,
        src_wkt: str,
        resample_alg: str = "near",
        nodata: Optional[Sequence[Optional[float]]] = None,
    ) -> None:
        """
        Resample ``source`` onto the grid and CRS of ``destination``.

        ``destination`` must already carry its geotransform, projection and
        per-band nodata values.

        Parameters
        ----------
        nodata : sequence, optional
            Nodata value of each band (None for a band without one). Pixels
            equal to a band's value are skipped, and the area outside the
            source footprint is filled with it. When only some bands have a
            value, GDAL reads each band's own value from the datasets.
        """
        values = list(nodata or [])
        has_nodata = any(value is not None for value in values)
        per_band = None
        if values and all(value is not None for value in values):
            per_band = " ".join(repr(float(value)) for value in values)

        options = gdal.WarpOptions(
            srcSRS=src_wkt,
            resampleAlg=resample_alg,
            srcNodata=per_band,
            dstNodata=per_band,
            warpOptions=["INIT_DEST=NO_DATA"] if has_nodata else ["INIT_DEST=0"],
            multithread=False,
        )
        try:
            result = gdal.Warp(destination, source, options=options)
        except RuntimeError as e:
            raise ReprojectionError(f"Warp operation failed: {e}") from e
        if not result:
            raise ReprojectionError("Warp operation failed")
        destination.FlushCache()


def get_engine() -> RasterEngine:
    """Return the process-wide raster engine, initializing GDAL on first use."""
    return RasterEngine.instance()
