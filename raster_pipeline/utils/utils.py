#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility functions for the raster processing pipeline.

This module provides small helpers shared across the pipeline: a timing
decorator for stage functions and output-path preparation.
"""
import os
import time
import functools
from typing import Callable

from raster_pipeline.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def timer(func: Callable) -> Callable:
    """
    Decorator to time function execution.

    Parameters
    ----------
    func : Callable
        Function to time.

    Returns
    -------
    Callable
        Wrapped function with timing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start_time
        logger.debug(f"Function {func.__name__} took {elapsed:.2f} seconds to run")
        return result
    return wrapper


def ensure_parent_dir(path: str) -> bool:
    """
    Create the directory holding ``path`` if needed.

    Returns
    -------
    bool
        True if the directory was created, False if it already existed.
    """
    directory = os.path.dirname(os.path.abspath(path))
    if os.path.isdir(directory):
        return False
    os.makedirs(directory, exist_ok=True)
    return True


def truncate(text: str, length: int) -> str:
    """Shorten ``text`` to ``length`` characters, ending with an ellipsis."""
    if len(text) <= length:
        return text
    return text[:max(length - 3, 0)] + "..."
