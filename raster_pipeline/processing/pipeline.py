#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pipeline state machine for the raster processing pipeline.

A ``Pipeline`` drives one configuration through four stages::

    CREATED -> LOADED -> CLEANED -> TRANSFORMED -> SAVED

Any failing stage moves the pipeline to the absorbing FAILED state and
records a message naming the stage. Stage methods return booleans; domain,
GDAL and file-system errors raised inside a stage become that stage's
failure. ``run()`` drives all four stages and reports a single result.
"""
import os
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from raster_pipeline.core.config import PipelineConfig
from raster_pipeline.core.dataset import RasterHandle
from raster_pipeline.core.engine import get_engine
from raster_pipeline.core.exceptions import (
    ConfigError, OpenError, RasterIOError, RasterPipelineError
)
from raster_pipeline.core.logging_config import get_module_logger
from raster_pipeline.core.scratch import ScratchSpace
from raster_pipeline.processing.transformer import TransformChain
from raster_pipeline.utils.metadata import describe_dataset, log_dataset_info, save_metadata
from raster_pipeline.utils.utils import ensure_parent_dir, timer

# Initialize logger
logger = get_module_logger(__name__)


class PipelineState(Enum):
    CREATED = "created"
    LOADED = "loaded"
    CLEANED = "cleaned"
    TRANSFORMED = "transformed"
    SAVED = "saved"
    FAILED = "failed"


class Pipeline:
    """
    Load, validate, transform and save one raster.

    Parameters
    ----------
    config : PipelineConfig
        Processing intent. It is validated on construction; an invalid
        configuration leaves the pipeline FAILED.
    scratch : ScratchSpace, optional
        Where intermediate datasets go. When omitted, the pipeline creates one
        from ``config.scratch_dir``/``config.scratch_format`` and removes it in
        ``cleanup()``.
    chain : TransformChain, optional
        Transform chain to use; built on ``scratch`` when omitted.
    """

    def __init__(self, config: PipelineConfig, scratch: Optional[ScratchSpace] = None,
                 chain: Optional[TransformChain] = None):
        self.config = config
        self.state = PipelineState.CREATED
        self.has_errors = False
        self.last_error = ""

        self._owns_scratch = scratch is None
        self.scratch = scratch if scratch is not None else ScratchSpace(
            config.scratch_dir, driver_name=config.scratch_format
        )
        self.chain = chain if chain is not None else TransformChain(
            self.scratch, resample_alg=config.resample_alg
        )

        self._input: Optional[RasterHandle] = None
        self._working: Optional[RasterHandle] = None
        self._input_info: Dict[str, Any] = {}
        self._steps: List[str] = []
        self._output_created = False

        try:
            config.validate()
        except ConfigError as e:
            self._fail("config", f"Configuration validation failed: {e}")

    # State helpers

    @property
    def input_dataset(self) -> Optional[RasterHandle]:
        return self._input

    @property
    def working_dataset(self) -> Optional[RasterHandle]:
        return self._working

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED

    def _fail(self, stage: str, message: str) -> bool:
        self.last_error = f"{stage}: {message}"
        self.has_errors = True
        self.state = PipelineState.FAILED
        logger.error(self.last_error)
        return False

    def _require(self, expected: PipelineState, stage: str) -> bool:
        if self.state is PipelineState.FAILED:
            return False
        if self.state is not expected:
            return self._fail(stage, f"requires state '{expected.value}', "
                                     f"pipeline is '{self.state.value}'")
        return True

    def _step(self, message: str) -> None:
        logger.info(f"=== {message} ===")

    # Stages

    @timer
    def load(self) -> bool:
        """Validate the input path and open it. CREATED -> LOADED."""
        if not self._require(PipelineState.CREATED, "load"):
            return False
        self._step("Loading input dataset")

        path = self.config.input_file
        if not path:
            return self._fail("load", "Input file path is empty")
        if not os.path.exists(path):
            return self._fail("load", f"Input file does not exist: {path}")
        if not os.path.isfile(path):
            return self._fail("load", f"Input path is not a regular file: {path}")

        try:
            self._input = RasterHandle.open(path)
        except (OpenError, RuntimeError) as e:
            return self._fail("load", str(e))

        self._input_info = describe_dataset(self._input)
        if self.config.verbose:
            log_dataset_info(self._input, "Input dataset")
        logger.info("Successfully loaded input dataset")
        self.state = PipelineState.LOADED
        return True

    @timer
    def clean(self) -> bool:
        """Check structural invariants of the input. LOADED -> CLEANED."""
        if not self._require(PipelineState.LOADED, "clean"):
            return False
        self._step("Cleaning dataset")

        if self._input is None or not self._input.is_valid:
            return self._fail("clean", "No valid input dataset for cleaning")
        if self._input.band_count == 0:
            return self._fail("clean", "Dataset has no raster bands")
        if self._input.width <= 0 or self._input.height <= 0:
            return self._fail("clean", "Dataset has invalid dimensions")

        if self.config.verbose:
            for band in range(1, self._input.band_count + 1):
                nodata = self._input.get_nodata_value(band)
                if nodata is not None:
                    logger.info(f"Band {band} nodata value: {nodata}")

        logger.info("Dataset cleaning completed")
        self.state = PipelineState.CLEANED
        return True

    @timer
    def transform(self) -> bool:
        """
        Produce the working dataset. CLEANED -> TRANSFORMED.

        Without any configured transformation the working dataset is a
        verbatim copy of the input.
        """
        if not self._require(PipelineState.CLEANED, "transform"):
            return False
        self._step("Transforming dataset")

        try:
            if not self.config.needs_transformation:
                logger.info("No transformations specified, using a copy of the input dataset")
                self._working = self.chain.copy_dataset(self._input)
                self._steps = []
            else:
                self._working = self.chain.transform_dataset(self._input, self.config)
                self._steps = list(self.chain.applied_steps)
        except (RasterPipelineError, RuntimeError, OSError) as e:
            return self._fail("transform", str(e))

        if self.config.verbose:
            log_dataset_info(self._working, "Transformed dataset")
        logger.info("Dataset transformation completed")
        self.state = PipelineState.TRANSFORMED
        return True

    @timer
    def save(self) -> bool:
        """
        Write the working dataset to ``config.output_file``. TRANSFORMED -> SAVED.

        A failure after this call created the output removes the partial file;
        a failure before that leaves any existing file untouched.
        """
        if not self._require(PipelineState.TRANSFORMED, "save"):
            return False
        self._step("Saving output dataset")

        if self._working is None or not self._working.is_valid:
            return self._fail("save", "No valid dataset to save")

        output_file = self.config.output_file
        if not output_file:
            return self._fail("save", "Output file path is empty")
        engine = get_engine()
        fmt = self.config.output_format
        if not (engine.can_create(fmt) or engine.can_create_copy(fmt)):
            return self._fail("save", f"Unknown or read-only output format: {fmt}")
        try:
            if ensure_parent_dir(output_file):
                logger.info(f"Created output directory: {os.path.dirname(output_file)}")
        except OSError as e:
            return self._fail("save", f"Failed to create output directory: {e}")
        if os.path.exists(output_file):
            if not self.config.overwrite:
                return self._fail("save", f"Output file already exists: {output_file}")
            logger.info(f"Output file already exists and will be overwritten: {output_file}")

        self._output_created = False
        try:
            self._write_output()
        except (RasterPipelineError, RuntimeError, OSError) as e:
            if self._output_created:
                self._remove_partial_output()
            return self._fail("save", str(e))

        if self.config.verbose:
            logger.info(f"Output saved to: {output_file}")
            logger.info(f"Output format: {self.config.output_format}")
        logger.info("Dataset saved successfully")
        self.state = PipelineState.SAVED
        return True

    def _write_output(self) -> None:
        engine = get_engine()
        fmt = self.config.output_format
        working = self._working
        working.flush()

        if engine.can_create(fmt):
            output = RasterHandle.create(
                self.config.output_file, fmt, working.width, working.height,
                working.band_count, working.data_type, self.config.creation_options()
            )
            self._output_created = True
            with output:
                self._copy_into(output)
            return

        # CreateCopy-only drivers (PNG, JPEG, ...) are written from an in-memory staging copy
        staging = RasterHandle.create("", "MEM", working.width, working.height,
                                      working.band_count, working.data_type)
        with staging:
            self._copy_into(staging)
            engine.create_copy(self.config.output_file, fmt, staging.dataset,
                               self.config.creation_options())
            self._output_created = True

    def _remove_partial_output(self) -> None:
        try:
            get_engine().delete(self.config.output_file, self.config.output_format)
        except OSError as e:
            logger.warning(f"Could not remove partial output {self.config.output_file}: {e}")

    def _copy_into(self, output: RasterHandle) -> None:
        working = self._working
        output.set_geo_transform(working.get_geo_transform())
        output.set_projection(working.get_projection())
        for band in range(1, working.band_count + 1):
            data = working.read_band(band)
            if data.size == 0:
                raise RasterIOError(f"Failed to read band {band} for output")
            if not output.write_band(band, data):
                raise RasterIOError(f"Failed to write band {band} to output")
            output.set_nodata_value(band, working.get_nodata_value(band))
        output.flush()

    def run(self) -> bool:
        """
        Run load, clean, transform and save, stopping at the first failure.

        Handles and scratch datasets are released whatever the outcome.

        Returns
        -------
        bool
            True on success; on failure ``last_error`` names the stage.
        """
        logger.info(f"Starting raster processing pipeline for {self.config.input_file}")
        start_time = time.time()

        try:
            success = self.load() and self.clean() and self.transform() and self.save()
            if success and self.config.save_metadata:
                save_metadata(self.config, self._input_info, describe_output(self.config),
                              self._steps, time.time() - start_time)
        except RasterPipelineError as e:
            success = self._fail("run", str(e))
        except (OSError, RuntimeError, ValueError) as e:
            logger.debug("Unexpected pipeline failure", exc_info=True)
            success = self._fail("run", f"Pipeline execution failed: {e}")
        finally:
            self.cleanup()

        elapsed_ms = (time.time() - start_time) * 1000
        if success:
            logger.info(f"Pipeline completed successfully in {elapsed_ms:.0f}ms")
        else:
            logger.error(f"Pipeline failed after {elapsed_ms:.0f}ms: {self.last_error}")
        return success

    def cleanup(self) -> None:
        """Close the input and working datasets and release scratch space."""
        for handle in (self._working, self._input):
            if handle is not None:
                handle.close()
        self._working = None
        self._input = None
        if self._owns_scratch:
            self.scratch.cleanup()

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.cleanup()


def describe_output(config: PipelineConfig) -> Dict[str, Any]:
    """Describe the written output raster."""
    with RasterHandle.open(config.output_file) as output:
        return describe_dataset(output)
