#!/usr/bin/env python3
"""
Simple script to check if GDAL is usable by the raster pipeline
Returns:
- 1 (exit code 0) if GDAL, the required drivers and EPSG lookups are available
- 0 (exit code 1) otherwise
"""
import sys

REQUIRED_DRIVERS = ("GTiff", "MEM")

try:
    from raster_pipeline.core.engine import get_engine
    from raster_pipeline.core.crs import parse_crs
    from raster_pipeline.core.exceptions import ReprojectionError
except ImportError as e:
    print("0")
    print(f"GDAL import error: {e}")
    sys.exit(1)

engine = get_engine()
missing = [name for name in REQUIRED_DRIVERS if not engine.can_create(name)]

try:
    parse_crs("EPSG:4326")
    epsg_ok = True
except ReprojectionError as e:
    print(f"EPSG lookup failed: {e}")
    epsg_ok = False

if missing or not epsg_ok:
    print("0")
    if missing:
        print(f"Missing raster drivers: {', '.join(missing)}")
    sys.exit(1)

print("1")
print(f"GDAL version: {engine.version()}")
sys.exit(0)
