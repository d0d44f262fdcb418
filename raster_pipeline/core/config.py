#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration settings for the raster processing pipeline.

This module centralizes the default parameters used across the pipeline and
defines ``PipelineConfig``, the validated, immutable processing intent that
the pipeline consumes read-only. Configurations can be loaded from JSON or
YAML files holding a single object or an array of objects.
"""
import os
import json
import math
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from raster_pipeline.core.exceptions import ConfigError
from raster_pipeline.core.geo import BoundingBox

# General configuration
DEFAULT_OUTPUT_FORMAT: str = "GTiff"
DEFAULT_NODATA_VALUE: float = -9999.0
NODATA_SANITY_LIMIT: float = 1e10  # |value| above this is treated as invalid
DEFAULT_COMPRESSION_LEVEL: int = 6
DEFAULT_RESAMPLE_ALG: str = "near"

RESAMPLE_ALGORITHMS: List[str] = [
    "near", "bilinear", "cubic", "cubicspline", "lanczos", "average", "mode",
]

# Path configuration
DEFAULT_OUTPUT_DIR: Path = Path.cwd() / "output"

# Scratch (intermediate dataset) configuration
SCRATCH_CONFIG: Dict[str, Any] = {
    "format": "GTiff",           # Driver for intermediate datasets ("MEM" keeps them in memory)
    "prefix": "raster_pipeline_",
}

# Output creation options per driver
CREATION_OPTIONS: Dict[str, List[str]] = {
    "GTiff": ["COMPRESS=DEFLATE", "ZLEVEL={compression_level}", "TILED=YES"],
}

# Export configuration
EXPORT_CONFIG: Dict[str, Any] = {
    "metadata_suffix": ".json",   # ".json" or ".yaml"
    "projection_preview_length": 100,
}

# Logging configuration
LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    "log_to_file": False,
    "log_file": DEFAULT_OUTPUT_DIR / "pipeline.log",
    "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Keys accepted in configuration files
CONFIG_KEYS = (
    "input_file", "output_file", "output_format", "target_crs", "clip_bounds",
    "clip_crs", "apply_nodata_mask", "nodata_value", "verbose",
    "compression_level", "resample_alg", "scratch_dir", "scratch_format",
    "save_metadata", "overwrite",
)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Processing intent for a single pipeline run.

    Parameters
    ----------
    input_file : str
        Path to the input raster.
    output_file : str
        Path of the raster to write.
    output_format : str, optional
        GDAL driver short name for the output, by default "GTiff".
    target_crs : str, optional
        CRS to reproject into (anything GDAL accepts, e.g. "EPSG:3857").
    clip_bounds : BoundingBox, optional
        Bounds to clip to, expressed in the target CRS (or ``clip_crs``).
    clip_crs : str, optional
        CRS the clip bounds are expressed in when it differs from the
        working dataset's CRS.
    apply_nodata_mask : bool, optional
        Replace NaN, infinite and out-of-range pixels with ``nodata_value``.
    nodata_value : float, optional
        Value written by the nodata mask, by default -9999.0.
    verbose : bool, optional
        Log dataset descriptions at each stage.
    """

    input_file: str
    output_file: str
    output_format: str = DEFAULT_OUTPUT_FORMAT
    target_crs: Optional[str] = None
    clip_bounds: Optional[BoundingBox] = None
    clip_crs: Optional[str] = None
    apply_nodata_mask: bool = False
    nodata_value: float = DEFAULT_NODATA_VALUE
    verbose: bool = False
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    resample_alg: str = DEFAULT_RESAMPLE_ALG
    scratch_dir: Optional[str] = None
    scratch_format: str = field(default=SCRATCH_CONFIG["format"])
    save_metadata: bool = False
    overwrite: bool = True

    @property
    def needs_transformation(self) -> bool:
        """True when at least one transform step is configured."""
        return (
            self.target_crs is not None
            or self.clip_bounds is not None
            or self.apply_nodata_mask
        )

    def validate(self) -> None:
        """
        Check the structural invariants of the configuration.

        Raises
        ------
        ConfigError
            If a required path is empty, the input file is missing, the clip
            bounds are not well-formed, or an option is out of range.
        """
        if not self.input_file:
            raise ConfigError("Input file path is required")
        if not self.output_file:
            raise ConfigError("Output file path is required")
        if not os.path.exists(self.input_file):
            raise ConfigError(f"Input file does not exist: {self.input_file}")
        if not self.output_format:
            raise ConfigError("Output format is required")

        if self.clip_bounds is not None and not self.clip_bounds.is_valid():
            raise ConfigError(
                "Invalid bounding box: min values must be less than max values "
                f"(got {tuple(self.clip_bounds)})"
            )
        if self.clip_crs is not None and self.clip_bounds is None:
            raise ConfigError("clip_crs is set but no clip_bounds were given")
        if self.target_crs is not None and not self.target_crs.strip():
            raise ConfigError("target_crs must not be empty")

        if not isinstance(self.nodata_value, (int, float)) or math.isinf(self.nodata_value):
            raise ConfigError(f"Invalid nodata value: {self.nodata_value!r}")
        if not 1 <= self.compression_level <= 9:
            raise ConfigError(
                f"Compression level must be between 1 and 9, got {self.compression_level}"
            )
        if self.resample_alg not in RESAMPLE_ALGORITHMS:
            raise ConfigError(
                f"Unknown resampling algorithm '{self.resample_alg}'. "
                f"Options: {', '.join(RESAMPLE_ALGORITHMS)}"
            )

    def replace(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with ``changes`` applied (``None`` values are ignored)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def creation_options(self) -> List[str]:
        """Driver creation options for the output dataset."""
        template = CREATION_OPTIONS.get(self.output_format, [])
        return [opt.format(compression_level=self.compression_level) for opt in template]

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        if self.clip_bounds is not None:
            data["clip_bounds"] = self.clip_bounds.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a configuration from a parsed JSON/YAML mapping.

        Parameters
        ----------
        data : Mapping
            Mapping with snake_case keys. ``clip_bounds`` may be a mapping
            with ``min_x``/``min_y``/``max_x``/``max_y`` or a 4-element list.

        Returns
        -------
        PipelineConfig
            Unvalidated configuration; call ``validate()`` before use.
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"Configuration entry must be an object, got {type(data).__name__}")

        # Imported here to avoid a circular import with logging_config
        from raster_pipeline.core.logging_config import get_module_logger
        logger = get_module_logger(__name__)

        unknown = sorted(set(data) - set(CONFIG_KEYS))
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")

        kwargs = {key: data[key] for key in CONFIG_KEYS if key in data and data[key] is not None}
        kwargs.setdefault("input_file", "")
        kwargs.setdefault("output_file", "")

        if "clip_bounds" in kwargs:
            try:
                kwargs["clip_bounds"] = BoundingBox.from_value(kwargs["clip_bounds"])
            except (TypeError, ValueError, KeyError) as e:
                raise ConfigError(f"Invalid clip_bounds: {e}") from e

        for key in ("input_file", "output_file", "output_format", "target_crs",
                    "clip_crs", "resample_alg", "scratch_dir", "scratch_format"):
            if key in kwargs:
                kwargs[key] = str(kwargs[key])
        try:
            if "nodata_value" in kwargs:
                kwargs["nodata_value"] = float(kwargs["nodata_value"])
            if "compression_level" in kwargs:
                kwargs["compression_level"] = int(kwargs["compression_level"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric option: {e}") from e

        for key in ("apply_nodata_mask", "verbose", "save_metadata", "overwrite"):
            if key in kwargs and not isinstance(kwargs[key], bool):
                raise ConfigError(
                    f"Option '{key}' must be true or false, got {kwargs[key]!r}"
                )

        return cls(**kwargs)


def _read_config_file(config_path: str) -> Any:
    path = Path(config_path)
    if not path.is_file():
        raise ConfigError(f"Cannot open config file: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                return yaml.safe_load(f)
            return json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e


def load_config(config_path: str, index: int = 0) -> PipelineConfig:
    """
    Load one configuration from a JSON or YAML file.

    Parameters
    ----------
    config_path : str
        Path to the configuration file.
    index : int, optional
        Entry to use when the file holds an array of configurations.

    Returns
    -------
    PipelineConfig
        Parsed (unvalidated) configuration.

    Raises
    ------
    ConfigError
        If the file is unreadable, malformed, or ``index`` is out of range.
    """
    data = _read_config_file(config_path)

    if isinstance(data, list):
        if not 0 <= index < len(data):
            raise ConfigError(
                f"Config index {index} is out of range. Array has {len(data)} elements."
            )
        return PipelineConfig.from_dict(data[index])

    if index != 0:
        raise ConfigError(
            f"Config index {index} specified but config file contains a single object."
        )
    return PipelineConfig.from_dict(data)


def load_all_configs(config_path: str) -> List[PipelineConfig]:
    """Load every configuration held by a JSON or YAML file."""
    data = _read_config_file(config_path)
    if isinstance(data, list):
        return [PipelineConfig.from_dict(entry) for entry in data]
    return [PipelineConfig.from_dict(data)]
