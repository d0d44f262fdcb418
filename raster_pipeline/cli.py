#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Main entry point for the raster processing pipeline.

This script builds a pipeline configuration from a JSON/YAML file and/or
command line flags, runs the pipeline, and turns the outcome into an exit
code (0 success, 1 pipeline failure, 2 configuration error).
"""
import sys
import json
import argparse
from typing import List, Optional

from tqdm import tqdm

from raster_pipeline import __version__
from raster_pipeline.core.config import (
    DEFAULT_NODATA_VALUE, DEFAULT_OUTPUT_FORMAT, RESAMPLE_ALGORITHMS,
    PipelineConfig, load_all_configs, load_config
)
from raster_pipeline.core.exceptions import ConfigError, OpenError
from raster_pipeline.core.geo import BoundingBox
from raster_pipeline.core.logging_config import setup_logging, get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2

COMMANDS = ("run", "info")


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--input", "-i",
        help="Input raster file"
    )
    parser.add_argument(
        "--output", "-o",
        help="Output raster file"
    )
    parser.add_argument(
        "--format", "-f",
        dest="output_format",
        help=f"Output format as a GDAL driver name (default: {DEFAULT_OUTPUT_FORMAT})"
    )
    parser.add_argument(
        "--config", "-c",
        help="JSON or YAML configuration file (one object or an array of objects)"
    )

    selection = parser.add_mutually_exclusive_group()
    selection.add_argument(
        "--config-index",
        type=int,
        default=0,
        help="Entry to use when the configuration file holds an array (default: 0)"
    )
    selection.add_argument(
        "--all-configs",
        action="store_true",
        help="Run every entry of the configuration file"
    )

    parser.add_argument(
        "--target-crs",
        help="Target coordinate reference system, e.g. EPSG:3857"
    )
    parser.add_argument(
        "--clip-bounds",
        nargs=4,
        type=float,
        metavar=("MIN_X", "MIN_Y", "MAX_X", "MAX_Y"),
        help="Clip bounds in the target CRS (or --clip-crs)"
    )
    parser.add_argument(
        "--clip-crs",
        help="CRS the clip bounds are expressed in"
    )
    parser.add_argument(
        "--nodata-mask",
        action="store_true",
        default=None,
        help="Replace NaN, infinite and out-of-range pixels with the nodata value"
    )
    parser.add_argument(
        "--nodata-value",
        type=float,
        help=f"Nodata value used by the mask (default: {DEFAULT_NODATA_VALUE})"
    )
    parser.add_argument(
        "--resample",
        dest="resample_alg",
        choices=RESAMPLE_ALGORITHMS,
        help="Resampling algorithm for reprojection (default: near)"
    )
    parser.add_argument(
        "--compression-level",
        type=int,
        help="DEFLATE compression level for GTiff output, 1-9 (default: 6)"
    )
    parser.add_argument(
        "--save-metadata", "-m",
        action="store_true",
        default=None,
        help="Write a metadata sidecar next to the output"
    )
    parser.add_argument(
        "--no-overwrite",
        dest="overwrite",
        action="store_false",
        default=None,
        help="Fail instead of overwriting an existing output file"
    )
    parser.add_argument(
        "--scratch-dir",
        help="Directory for intermediate datasets (default: a private temporary directory)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=None,
        help="Log dataset details at every stage"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)"
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Without a subcommand the arguments are parsed as ``run``.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = argparse.ArgumentParser(
        prog="raster-pipeline",
        description="Reproject, clip and mask raster datasets."
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Raster Processing Pipeline v{__version__}"
    )

    # Legacy format without subcommand
    if not argv or argv[0] not in COMMANDS and argv[0] not in ("-h", "--help", "--version"):
        argv = ["run"] + argv

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Process a raster")
    _add_run_arguments(run_parser)

    info_parser = subparsers.add_parser("info", help="Describe a raster")
    info_parser.add_argument(
        "--input", "-i",
        required=True,
        help="Raster file to describe"
    )
    info_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the description as JSON"
    )
    info_parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)"
    )

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        parser.exit(EXIT_CONFIG_ERROR)
    return args


def build_configs(args: argparse.Namespace) -> List[PipelineConfig]:
    """
    Combine the configuration file (if any) with command line overrides.

    Raises
    ------
    ConfigError
        If the file cannot be loaded or required paths are missing.
    """
    if args.config:
        if args.all_configs:
            base_configs = load_all_configs(args.config)
        else:
            base_configs = [load_config(args.config, args.config_index)]
    else:
        if args.all_configs:
            raise ConfigError("--all-configs requires --config")
        base_configs = [PipelineConfig(input_file="", output_file="")]

    clip_bounds = BoundingBox(*args.clip_bounds) if args.clip_bounds else None
    overrides = dict(
        input_file=args.input,
        output_file=args.output,
        output_format=args.output_format,
        target_crs=args.target_crs,
        clip_bounds=clip_bounds,
        clip_crs=args.clip_crs,
        apply_nodata_mask=args.nodata_mask,
        nodata_value=args.nodata_value,
        resample_alg=args.resample_alg,
        compression_level=args.compression_level,
        save_metadata=args.save_metadata,
        overwrite=args.overwrite,
        scratch_dir=args.scratch_dir,
        verbose=args.verbose,
    )
    if len(base_configs) > 1 and (args.input or args.output):
        raise ConfigError("--input/--output cannot be combined with --all-configs")

    return [config.replace(**overrides) for config in base_configs]


def run_pipelines(configs: List[PipelineConfig]) -> int:
    """Run every configuration; the exit code reflects the worst outcome."""
    # Imported here so `info` and argument errors do not pay for GDAL setup
    from raster_pipeline.processing.pipeline import Pipeline

    failures = 0
    for config in tqdm(configs, desc="Pipelines", unit="raster", disable=len(configs) < 2):
        pipeline = Pipeline(config)
        if pipeline.run():
            continue
        failures += 1
        if pipeline.last_error.startswith("config:"):
            logger.error(f"Invalid configuration for {config.input_file or '<no input>'}")
            if len(configs) == 1:
                return EXIT_CONFIG_ERROR

    if failures:
        logger.error(f"{failures} of {len(configs)} pipeline runs failed")
        return EXIT_FAILURE
    return EXIT_SUCCESS


def describe_raster(args: argparse.Namespace) -> int:
    """
    Print a description of a raster.

    Returns
    -------
    int
        Exit code.
    """
    from raster_pipeline.core.dataset import RasterHandle
    from raster_pipeline.utils.metadata import describe_dataset, format_dataset_info

    try:
        with RasterHandle.open(args.input) as handle:
            if args.json:
                print(json.dumps(describe_dataset(handle), indent=2))
            else:
                print("\n".join(format_dataset_info(handle, args.input)))
    except OpenError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to run the raster processing pipeline.
    """
    args = parse_arguments(argv)
    setup_logging(log_level=args.log_level)

    if args.command == "info":
        return describe_raster(args)

    try:
        configs = build_configs(args)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return EXIT_CONFIG_ERROR

    return run_pipelines(configs)


if __name__ == "__main__":
    sys.exit(main())
