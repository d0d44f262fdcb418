#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Scratch space for intermediate datasets.

Every intermediate raster produced by the transform chain is allocated here
under a deterministic name (``<stem>_<counter><ext>``) and removed as soon as
the handle that owns it is closed. ``cleanup()`` removes whatever is left.
"""
import os
import shutil
import tempfile
from typing import List, Optional

from raster_pipeline.core.config import SCRATCH_CONFIG
from raster_pipeline.core.engine import get_engine
from raster_pipeline.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

DRIVER_EXTENSIONS = {
    "GTiff": ".tif",
    "MEM": "",
    "HFA": ".img",
    "ENVI": ".dat",
}


class ScratchSpace:
    """
    Provider of temporary dataset locations.

    Parameters
    ----------
    directory : str, optional
        Directory to allocate in. When None, a private temporary directory is
        created on first use and removed by ``cleanup()``.
    driver_name : str, optional
        GDAL driver used for intermediate datasets.
    prefix : str, optional
        Prefix of the private temporary directory.
    """

    def __init__(self, directory: Optional[str] = None,
                 driver_name: str = SCRATCH_CONFIG["format"],
                 prefix: str = SCRATCH_CONFIG["prefix"]):
        self.driver_name = driver_name
        self.prefix = prefix
        self._directory = directory
        self._owns_directory = directory is None
        self._counter = 0
        self._live: List[str] = []

    @property
    def directory(self) -> str:
        if self._directory is None:
            self._directory = tempfile.mkdtemp(prefix=self.prefix)
            logger.debug(f"Created scratch directory {self._directory}")
        elif not os.path.isdir(self._directory):
            os.makedirs(self._directory, exist_ok=True)
        return self._directory

    @property
    def live_paths(self) -> List[str]:
        """Paths allocated and not yet released."""
        return list(self._live)

    @property
    def in_memory(self) -> bool:
        return self.driver_name == "MEM"

    def allocate(self, stem: str) -> str:
        """Reserve a new dataset location for ``stem``."""
        self._counter += 1
        name = f"{stem}_{self._counter:03d}{DRIVER_EXTENSIONS.get(self.driver_name, '')}"
        path = name if self.in_memory else os.path.join(self.directory, name)
        self._live.append(path)
        return path

    def release(self, path: str) -> None:
        """Delete the dataset at ``path`` if this space allocated it."""
        if path not in self._live:
            return
        self._live.remove(path)
        if not self.in_memory:
            get_engine().delete(path, self.driver_name)

    def cleanup(self) -> None:
        """Release every live allocation and remove a private directory."""
        for path in list(self._live):
            self.release(path)
        if self._owns_directory and self._directory is not None:
            shutil.rmtree(self._directory, ignore_errors=True)
            logger.debug(f"Removed scratch directory {self._directory}")
            self._directory = None

    def __enter__(self) -> "ScratchSpace":
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback):
        self.cleanup()

    def __repr__(self) -> str:
        return (f"ScratchSpace(directory={self._directory!r}, "
                f"driver={self.driver_name!r}, live={len(self._live)})")
