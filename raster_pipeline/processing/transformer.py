#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Transform chain for the raster processing pipeline.

This module composes the spatial transformations applied to a dataset. The
configured chain always runs in the same order: reprojection, then clipping
(clip bounds are expressed in the target CRS), then nodata masking (so
resampling cannot undo it). Scaling is available but only called directly.

Every operation leaves its input untouched and returns a new
``RasterHandle`` allocated in the chain's scratch space.
"""
from typing import List, Optional

import numpy as np

from raster_pipeline.core import crs
from raster_pipeline.core.config import (
    DEFAULT_RESAMPLE_ALG, NODATA_SANITY_LIMIT, PipelineConfig
)
from raster_pipeline.core.dataset import RasterHandle
from raster_pipeline.core.engine import get_engine
from raster_pipeline.core.exceptions import (
    ClipError, InvalidArgument, RasterIOError, ReprojectionError
)
from raster_pipeline.core.geo import BoundingBox, calculate_clip_window
from raster_pipeline.core.logging_config import get_module_logger
from raster_pipeline.core.scratch import ScratchSpace
from raster_pipeline.utils.utils import timer

# Initialize logger
logger = get_module_logger(__name__)


class TransformChain:
    """
    Reprojection, clipping, masking and scaling of raster datasets.

    Parameters
    ----------
    scratch : ScratchSpace, optional
        Where intermediate datasets are allocated. A private scratch space is
        created when omitted.
    resample_alg : str, optional
        Resampling algorithm used by reprojection, by default "near".
    """

    def __init__(self, scratch: Optional[ScratchSpace] = None,
                 resample_alg: str = DEFAULT_RESAMPLE_ALG):
        self.scratch = scratch if scratch is not None else ScratchSpace()
        self.resample_alg = resample_alg
        self.applied_steps: List[str] = []

    def _create(self, stem: str, width: int, height: int, band_count: int,
                data_type: int) -> RasterHandle:
        path = self.scratch.allocate(stem)
        try:
            return RasterHandle.create(path, self.scratch.driver_name, width, height,
                                       band_count, data_type, on_close=self.scratch.release)
        except Exception:
            self.scratch.release(path)
            raise

    @staticmethod
    def _require_valid(src: RasterHandle, operation: str) -> None:
        if src is None or not src.is_valid:
            raise RasterIOError(f"Invalid input dataset for {operation}")

    @staticmethod
    def _copy_metadata(src: RasterHandle, dst: RasterHandle) -> None:
        dst.set_geo_transform(src.get_geo_transform())
        dst.set_projection(src.get_projection())

    @staticmethod
    def _read(src: RasterHandle, band: int, operation: str, *window) -> np.ndarray:
        data = src.read_band(band, *window)
        if data.size == 0:
            raise RasterIOError(f"Failed to read band {band} for {operation}")
        return data

    @staticmethod
    def _write(dst: RasterHandle, band: int, data: np.ndarray, operation: str) -> None:
        if not dst.write_band(band, data):
            raise RasterIOError(f"Failed to write band {band} for {operation}")

    def _map_bands(self, src: RasterHandle, stem: str, operation: str, func) -> RasterHandle:
        """
        Build a same-size copy of ``src`` whose bands are ``func(data, nodata)``.

        ``func`` returns the new band data and the nodata value to record.
        """
        self._require_valid(src, operation)
        dst = self._create(stem, src.width, src.height, src.band_count, src.data_type)
        try:
            self._copy_metadata(src, dst)
            for band in range(1, src.band_count + 1):
                data = self._read(src, band, operation)
                data, nodata = func(data, src.get_nodata_value(band))
                self._write(dst, band, data, operation)
                dst.set_nodata_value(band, nodata)
            dst.flush()
        except Exception:
            dst.close()
            raise
        return dst

    @timer
    def copy_dataset(self, src: RasterHandle, stem: str = "working") -> RasterHandle:
        """Verbatim copy: size, type, bands, geotransform, projection, nodata."""
        return self._map_bands(src, stem, "copy", lambda data, nodata: (data, nodata))

    @timer
    def reproject_dataset(self, src: RasterHandle, target_crs: str) -> RasterHandle:
        """
        Warp ``src`` into ``target_crs``.

        The destination size and geotransform are the engine's suggested warp
        output for the source extent; pixels are resampled with
        ``self.resample_alg``.

        Raises
        ------
        ReprojectionError
            If ``target_crs`` cannot be parsed, ``src`` has no projection, or
            the warp fails.
        """
        self._require_valid(src, "reprojection")
        src_wkt = src.get_projection()
        if not src_wkt:
            raise ReprojectionError("Source dataset has no projection")
        dst_wkt = crs.parse_crs(target_crs)

        engine = get_engine()
        src.flush()
        geo_transform, width, height = engine.suggest_warp_output(
            src.dataset, src_wkt, dst_wkt, self.resample_alg
        )
        logger.debug(f"Suggested warp output {width}x{height}, geotransform {tuple(geo_transform)}")

        dst = self._create("reproject", width, height, src.band_count, src.data_type)
        try:
            dst.set_geo_transform(geo_transform)
            dst.set_projection(dst_wkt)
            nodata = [src.get_nodata_value(band) for band in range(1, src.band_count + 1)]
            for band, value in enumerate(nodata, start=1):
                dst.set_nodata_value(band, value)
            engine.warp(src.dataset, dst.dataset, src_wkt, self.resample_alg, nodata)
        except Exception:
            dst.close()
            raise
        return dst

    @timer
    def clip_dataset(self, src: RasterHandle, bounds: BoundingBox) -> RasterHandle:
        """
        Cut the pixel window covering ``bounds`` out of ``src``.

        Pixels are copied verbatim; the geotransform origin moves to the
        window's top-left corner.

        Raises
        ------
        ClipError
            If ``src`` has no geotransform or ``bounds`` do not overlap it.
        """
        self._require_valid(src, "clipping")
        geo_transform = src.get_geo_transform()
        window = calculate_clip_window(geo_transform, src.width, src.height, bounds)
        logger.debug(f"Clip window: offset ({window.x_off}, {window.y_off}), "
                     f"size {window.x_size}x{window.y_size}")

        dst = self._create("clip", window.x_size, window.y_size, src.band_count, src.data_type)
        try:
            dst.set_geo_transform(geo_transform.shifted(window.x_off, window.y_off))
            dst.set_projection(src.get_projection())
            for band in range(1, src.band_count + 1):
                data = self._read(src, band, "clipping", *window)
                self._write(dst, band, data, "clipping")
                dst.set_nodata_value(band, src.get_nodata_value(band))
            dst.flush()
        except Exception:
            dst.close()
            raise
        return dst

    @timer
    def apply_nodata_mask(self, src: RasterHandle, nodata_value: float) -> RasterHandle:
        """
        Replace NaN, infinite and out-of-range pixels with ``nodata_value``.

        A pixel is out of range when its magnitude exceeds
        ``NODATA_SANITY_LIMIT``. Every band's nodata value is set to
        ``nodata_value``.
        """
        def mask(data, _nodata):
            with np.errstate(invalid='ignore'):
                invalid = ~np.isfinite(data) | (np.abs(data) > NODATA_SANITY_LIMIT)
            masked = data.copy()
            masked[invalid] = nodata_value
            if invalid.any():
                logger.debug(f"Masked {int(invalid.sum())} invalid pixels")
            return masked, nodata_value

        return self._map_bands(src, "mask", "nodata masking", mask)

    @timer
    def scale_dataset(self, src: RasterHandle, factor: float) -> RasterHandle:
        """
        Multiply every valid pixel by ``factor``.

        NaN pixels and pixels equal to the band's nodata value are left as is.

        Raises
        ------
        InvalidArgument
            If ``factor <= 0`` or ``factor == 1.0``.
        """
        if factor <= 0.0 or factor == 1.0:
            raise InvalidArgument(f"Invalid scale factor: {factor}")

        def scale(data, nodata):
            valid = ~np.isnan(data)
            if nodata is not None:
                valid &= data != nodata
            scaled = data.copy()
            scaled[valid] *= factor
            return scaled, nodata

        return self._map_bands(src, "scale", "scaling", scale)

    def _clip_bounds_for(self, current: RasterHandle, config: PipelineConfig) -> BoundingBox:
        bounds = config.clip_bounds
        if config.clip_crs is None:
            return bounds
        projection = current.get_projection()
        if not projection:
            raise ClipError("Cannot reproject clip bounds: dataset has no projection")
        try:
            if crs.same_crs(config.clip_crs, projection):
                return bounds
            transformed = crs.transform_bounds(bounds, config.clip_crs, projection)
        except ReprojectionError as e:
            raise ClipError(f"Cannot reproject clip bounds: {e}") from e
        logger.debug(f"Clip bounds {tuple(bounds)} in {config.clip_crs} -> {tuple(transformed)}")
        return transformed

    def transform_dataset(self, src: RasterHandle, config: PipelineConfig) -> RasterHandle:
        """
        Apply the configured transformations to a copy of ``src``.

        Steps run in fixed order: reprojection if ``config.target_crs`` is set,
        clipping if ``config.clip_bounds`` is set, masking if
        ``config.apply_nodata_mask`` is set. Each step's output feeds the next
        and the previous intermediate is released. A failing step releases
        everything produced so far and re-raises.
        """
        self._require_valid(src, "transformation")
        self.applied_steps = []
        current = self.copy_dataset(src)
        try:
            if config.target_crs is not None:
                logger.info(f"Reprojecting to: {config.target_crs}")
                current = self._advance(current, self.reproject_dataset(current, config.target_crs))
                self.applied_steps.append("reproject")

            if config.clip_bounds is not None:
                bounds = self._clip_bounds_for(current, config)
                logger.info(f"Clipping to bounds: [{bounds.min_x}, {bounds.min_y}, "
                            f"{bounds.max_x}, {bounds.max_y}]")
                current = self._advance(current, self.clip_dataset(current, bounds))
                self.applied_steps.append("clip")

            if config.apply_nodata_mask:
                logger.info(f"Applying nodata mask with value: {config.nodata_value}")
                current = self._advance(current,
                                        self.apply_nodata_mask(current, config.nodata_value))
                self.applied_steps.append("mask")
        except Exception:
            current.close()
            raise
        return current

    @staticmethod
    def _advance(previous: RasterHandle, following: RasterHandle) -> RasterHandle:
        previous.close()
        return following
