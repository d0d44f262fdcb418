#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for the transform chain.
"""
import os
import shutil
import tempfile
import unittest

import numpy as np

from raster_pipeline.core import crs
from raster_pipeline.core.config import PipelineConfig
from raster_pipeline.core.dataset import RasterHandle
from raster_pipeline.core.exceptions import ClipError, InvalidArgument, ReprojectionError
from raster_pipeline.core.geo import BoundingBox
from raster_pipeline.core.scratch import ScratchSpace
from raster_pipeline.processing.transformer import TransformChain
from tests.synthetic import create_synthetic_raster, gradient, set_band_nodata, stacked


class TransformTestCase(unittest.TestCase):
    """Common fixtures: a scratch directory the tests can inspect."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.scratch = ScratchSpace(os.path.join(self.tmp_dir, 'scratch'))
        self.chain = TransformChain(self.scratch)
        self.data = gradient(100, 100)
        self.path = create_synthetic_raster(os.path.join(self.tmp_dir, 'input.tif'), self.data)

    def tearDown(self):
        self.scratch.cleanup()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def open_input(self):
        return RasterHandle.open(self.path)


class TestCopyAndClip(TransformTestCase):
    """Test verbatim copies and window clipping."""

    def test_copy_is_verbatim(self):
        with self.open_input() as src, self.chain.copy_dataset(src) as dst:
            self.assertEqual((dst.width, dst.height, dst.band_count), (100, 100, 1))
            self.assertEqual(dst.data_type, src.data_type)
            self.assertEqual(dst.get_geo_transform(), src.get_geo_transform())
            self.assertTrue(crs.same_crs(dst.get_projection(), src.get_projection()))
            np.testing.assert_array_equal(dst.read_band(1), src.read_band(1))

    def test_clip_window(self):
        with self.open_input() as src:
            clipped = self.chain.clip_dataset(src, BoundingBox(10, 10, 40, 40))
        with clipped:
            self.assertEqual((clipped.width, clipped.height), (30, 30))
            gt = clipped.get_geo_transform()
            self.assertEqual((gt.origin_x, gt.origin_y), (10.0, 40.0))
            self.assertEqual((gt.pixel_width, gt.pixel_height), (1.0, -1.0))
            expected = self.data[60:90, 10:40].ravel()
            np.testing.assert_array_equal(clipped.read_band(1), expected)

    def test_clip_disjoint_bounds(self):
        with self.open_input() as src:
            with self.assertRaises(ClipError):
                self.chain.clip_dataset(src, BoundingBox(500, 500, 600, 600))
        self.assertEqual(self.scratch.live_paths, [])

    def test_clip_partial_overlap(self):
        with self.open_input() as src:
            clipped = self.chain.clip_dataset(src, BoundingBox(90, -20, 150, 5))
        with clipped:
            self.assertGreater(clipped.width, 0)
            self.assertGreater(clipped.height, 0)
            bounds = clipped.get_bounds()
            self.assertLessEqual(bounds.max_x, 100.0)
            self.assertGreaterEqual(bounds.min_y, 0.0)


class TestMaskAndScale(TransformTestCase):
    """Test pixel value operations."""

    def setUp(self):
        super().setUp()
        data = gradient(10, 10)
        data[0, 0] = np.nan
        data[1, 1] = np.inf
        data[2, 2] = -np.inf
        data[3, 3] = 5e10
        self.dirty = create_synthetic_raster(
            os.path.join(self.tmp_dir, 'dirty.tif'), data, nodata=50.0
        )

    def test_mask_replaces_invalid_pixels(self):
        with RasterHandle.open(self.dirty) as src, \
                self.chain.apply_nodata_mask(src, -9999.0) as masked:
            values = masked.read_band(1).reshape(10, 10)
            for row, col in ((0, 0), (1, 1), (2, 2), (3, 3)):
                self.assertEqual(values[row, col], -9999.0)
            self.assertEqual(values[4, 5], 45.0)
            self.assertEqual(int(np.sum(values == -9999.0)), 4)
            self.assertEqual(masked.get_nodata_value(1), -9999.0)

    def test_mask_is_idempotent(self):
        with RasterHandle.open(self.dirty) as src, \
                self.chain.apply_nodata_mask(src, -9999.0) as once, \
                self.chain.apply_nodata_mask(once, -9999.0) as twice:
            np.testing.assert_array_equal(once.read_band(1), twice.read_band(1))
            self.assertEqual(once.get_nodata_value(1), twice.get_nodata_value(1))

    def test_scale_skips_nan_and_nodata(self):
        with RasterHandle.open(self.dirty) as src, self.chain.scale_dataset(src, 2.0) as scaled:
            values = scaled.read_band(1).reshape(10, 10)
            self.assertTrue(np.isnan(values[0, 0]))
            self.assertEqual(values[5, 0], 50.0)
            self.assertEqual(values[0, 1], 2.0)
            self.assertEqual(values[9, 9], 198.0)

    def test_scale_rejects_identity_and_non_positive(self):
        with RasterHandle.open(self.dirty) as src:
            for factor in (1.0, 0.0, -2.0):
                with self.subTest(factor=factor):
                    with self.assertRaises(InvalidArgument):
                        self.chain.scale_dataset(src, factor)


class TestReprojection(TransformTestCase):
    """Test warping and the configured transform order."""

    def setUp(self):
        super().setUp()
        # 10 x 10 degrees over Europe, inside the valid Web Mercator range
        self.geographic = create_synthetic_raster(
            os.path.join(self.tmp_dir, 'geographic.tif'), gradient(100, 100),
            origin=(10.0, 50.0), pixel_size=0.1
        )
        self.mercator_bounds = BoundingBox(1300000, 5200000, 1600000, 5500000)

    def test_reproject_to_web_mercator(self):
        with RasterHandle.open(self.geographic) as src, \
                self.chain.reproject_dataset(src, 'EPSG:3857') as warped:
            self.assertTrue(crs.same_crs(warped.get_projection(), 'EPSG:3857'))
            self.assertNotEqual((warped.width, warped.height), (100, 100))
            bounds = warped.get_bounds()
            self.assertAlmostEqual(bounds.min_x, 1113194.9, delta=20000)
            self.assertAlmostEqual(bounds.max_x, 2226389.8, delta=20000)

    def test_reproject_is_deterministic(self):
        sizes = []
        for _ in range(2):
            with RasterHandle.open(self.geographic) as src, \
                    self.chain.reproject_dataset(src, 'EPSG:3857') as warped:
                sizes.append((warped.width, warped.height, tuple(warped.get_geo_transform())))
        self.assertEqual(sizes[0], sizes[1])

    def test_reproject_invalid_crs(self):
        with RasterHandle.open(self.geographic) as src:
            with self.assertRaises(ReprojectionError):
                self.chain.reproject_dataset(src, 'EPSG:999999')

    def test_reproject_requires_projection(self):
        path = create_synthetic_raster(
            os.path.join(self.tmp_dir, 'unprojected.tif'), gradient(10, 10), crs=None
        )
        with RasterHandle.open(path) as src:
            with self.assertRaises(ReprojectionError):
                self.chain.reproject_dataset(src, 'EPSG:3857')

    def test_reprojection_runs_before_clipping(self):
        config = PipelineConfig(input_file=self.geographic, output_file='unused.tif',
                                target_crs='EPSG:3857', clip_bounds=self.mercator_bounds)
        with RasterHandle.open(self.geographic) as src:
            with self.chain.transform_dataset(src, config) as result:
                self.assertEqual(self.chain.applied_steps, ['reproject', 'clip'])
                bounds = result.get_bounds()
                self.assertTrue(bounds.intersects(self.mercator_bounds))
                self.assertLess(result.width * result.height, 100 * 100)

            # The same numeric bounds make no sense in the source CRS
            with self.assertRaises(ClipError):
                self.chain.clip_dataset(src, self.mercator_bounds)

    def test_clip_bounds_in_other_crs(self):
        config = PipelineConfig(input_file=self.geographic, output_file='unused.tif',
                                clip_bounds=self.mercator_bounds, clip_crs='EPSG:3857')
        with RasterHandle.open(self.geographic) as src, \
                self.chain.transform_dataset(src, config) as result:
            bounds = result.get_bounds()
            self.assertGreater(bounds.min_x, 11.0)
            self.assertLess(bounds.max_x, 15.0)
            self.assertTrue(crs.same_crs(result.get_projection(), 'EPSG:4326'))

    def test_failed_chain_releases_intermediates(self):
        config = PipelineConfig(input_file=self.geographic, output_file='unused.tif',
                                target_crs='EPSG:3857', clip_bounds=BoundingBox(0, 0, 1, 1),
                                apply_nodata_mask=True)
        with RasterHandle.open(self.geographic) as src:
            with self.assertRaises(ClipError):
                self.chain.transform_dataset(src, config)
        self.assertEqual(self.scratch.live_paths, [])
        self.assertEqual(os.listdir(self.scratch.directory), [])

    def test_chain_releases_previous_steps(self):
        config = PipelineConfig(input_file=self.geographic, output_file='unused.tif',
                                target_crs='EPSG:3857', apply_nodata_mask=True)
        with RasterHandle.open(self.geographic) as src:
            result = self.chain.transform_dataset(src, config)
            self.assertEqual(self.scratch.live_paths, [result.path])
            result.close()
        self.assertEqual(self.scratch.live_paths, [])


class TestMultiBand(TransformTestCase):
    """Every band keeps its own pixels and nodata value."""

    def setUp(self):
        super().setUp()
        self.stack = stacked(100, 100, 3)
        self.multi = create_synthetic_raster(os.path.join(self.tmp_dir, 'multi.tif'), self.stack)
        set_band_nodata(self.multi, [-1.0, -2.0, -3.0])

    def test_clip_copies_every_band_window(self):
        with RasterHandle.open(self.multi) as src, \
                self.chain.clip_dataset(src, BoundingBox(10, 10, 40, 40)) as clipped:
            self.assertEqual(clipped.band_count, 3)
            for band in range(1, 4):
                with self.subTest(band=band):
                    expected = self.stack[band - 1, 60:90, 10:40].ravel()
                    np.testing.assert_array_equal(clipped.read_band(band), expected)
                    self.assertEqual(clipped.get_nodata_value(band), -float(band))

    def test_mask_keeps_bands_apart(self):
        with RasterHandle.open(self.multi) as src, \
                self.chain.apply_nodata_mask(src, -9999.0) as masked:
            for band in range(1, 4):
                np.testing.assert_array_equal(masked.read_band(band),
                                              self.stack[band - 1].ravel())
                self.assertEqual(masked.get_nodata_value(band), -9999.0)

    def test_reproject_uses_each_band_nodata(self):
        path = create_synthetic_raster(
            os.path.join(self.tmp_dir, 'multi_geographic.tif'), stacked(100, 100, 2),
            origin=(10.0, 50.0), pixel_size=0.1
        )
        set_band_nodata(path, [-1.0, -2.0])

        # Lambert azimuthal equal-area bends the footprint, leaving empty corners
        with RasterHandle.open(path) as src, \
                self.chain.reproject_dataset(src, 'EPSG:3035') as warped:
            self.assertEqual(warped.get_nodata_value(1), -1.0)
            self.assertEqual(warped.get_nodata_value(2), -2.0)
            first = warped.read_band(1)
            second = warped.read_band(2)

        outside = first == -1.0
        self.assertTrue(outside.any())
        np.testing.assert_array_equal(second[outside], -2.0)
        self.assertFalse((second == -1.0).any())
        self.assertTrue((second[~outside] >= 1000.0).all())


if __name__ == '__main__':
    unittest.main()
