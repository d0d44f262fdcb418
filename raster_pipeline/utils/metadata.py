#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Metadata utilities for the raster processing pipeline.

This module provides functions for describing raster datasets and for saving
a metadata sidecar that records what a pipeline run did.
"""
import os
import json
import yaml
from typing import Any, Dict, List, Optional
from datetime import datetime
from pathlib import Path

from raster_pipeline import __version__
from raster_pipeline.core.config import EXPORT_CONFIG, PipelineConfig
from raster_pipeline.core.dataset import RasterHandle
from raster_pipeline.core.logging_config import get_module_logger
from raster_pipeline.utils.utils import truncate

# Initialize logger
logger = get_module_logger(__name__)


def describe_dataset(handle: RasterHandle) -> Dict[str, Any]:
    """
    Summarize the georeferencing and band layout of a dataset.

    Parameters
    ----------
    handle : RasterHandle
        Dataset to describe.

    Returns
    -------
    dict
        Dictionary with size, band, data type, bounds, geotransform,
        projection and nodata information. A closed handle yields zero sizes
        and empty metadata.
    """
    geo_transform = handle.get_geo_transform()
    bounds = handle.get_bounds()
    return {
        'path': handle.path,
        'driver': handle.driver_name,
        'width': handle.width,
        'height': handle.height,
        'band_count': handle.band_count,
        'data_type': handle.data_type_name,
        'bounds': bounds.to_dict() if bounds is not None else None,
        'geo_transform': list(geo_transform) if geo_transform is not None else None,
        'projection': handle.get_projection(),
        'nodata': [handle.get_nodata_value(band) for band in range(1, handle.band_count + 1)],
    }


def format_dataset_info(handle: RasterHandle, label: str) -> List[str]:
    """Human-readable lines describing ``handle``."""
    info = describe_dataset(handle)
    lines = [
        f"--- {label} ---",
        f"Dimensions: {info['width']} x {info['height']}",
        f"Bands: {info['band_count']}",
        f"Data type: {info['data_type']}",
    ]
    bounds = info['bounds']
    if bounds is not None:
        lines.append(f"Bounds: [{bounds['min_x']}, {bounds['min_y']}, "
                     f"{bounds['max_x']}, {bounds['max_y']}]")
    if info['projection']:
        preview = truncate(info['projection'], EXPORT_CONFIG['projection_preview_length'])
        lines.append(f"Projection: {preview}")
    for band, nodata in enumerate(info['nodata'], start=1):
        if nodata is not None:
            lines.append(f"Band {band} nodata value: {nodata}")
    return lines


def log_dataset_info(handle: RasterHandle, label: str) -> None:
    for line in format_dataset_info(handle, label):
        logger.info(line)


def save_metadata(
    config: PipelineConfig,
    input_info: Dict[str, Any],
    output_info: Dict[str, Any],
    steps: List[str],
    elapsed_seconds: float,
    output_path: Optional[str] = None,
) -> str:
    """
    Save metadata about a pipeline run.

    Parameters
    ----------
    config : PipelineConfig
        Configuration of the run.
    input_info, output_info : dict
        Dataset descriptions from ``describe_dataset``.
    steps : list
        Names of the transform steps that were applied.
    elapsed_seconds : float
        Wall-clock duration of the run.
    output_path : str, optional
        Destination file. Defaults to the output raster path with the suffix
        from ``EXPORT_CONFIG['metadata_suffix']``; a ``.yaml``/``.yml``
        suffix writes YAML, anything else JSON.

    Returns
    -------
    str
        Path of the written metadata file.
    """
    if output_path is None:
        output_path = str(Path(config.output_file).with_suffix(EXPORT_CONFIG['metadata_suffix']))

    metadata = {
        'timestamp': datetime.now().isoformat(),
        'version': __version__,
        'config': config.to_dict(),
        'steps': steps,
        'elapsed_seconds': round(elapsed_seconds, 3),
        'input': input_info,
        'output': output_info,
    }

    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    with open(output_path, 'w') as f:
        if Path(output_path).suffix.lower() in ('.yaml', '.yml'):
            yaml.safe_dump(metadata, f, sort_keys=False)
        else:
            json.dump(metadata, f, indent=2)

    logger.info(f"Saved metadata to {output_path}")
    return output_path
