#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for pipeline configuration loading and validation.
"""
import os
import json
import shutil
import tempfile
import unittest

import yaml

from raster_pipeline.core.config import (
    DEFAULT_NODATA_VALUE, PipelineConfig, load_all_configs, load_config
)
from raster_pipeline.core.exceptions import ConfigError
from raster_pipeline.core.geo import BoundingBox


class TestPipelineConfig(unittest.TestCase):
    """Test construction and validation of PipelineConfig."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.input_file = os.path.join(self.tmp_dir, 'input.tif')
        with open(self.input_file, 'wb') as f:
            f.write(b'placeholder')

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def make(self, **kwargs):
        kwargs.setdefault('input_file', self.input_file)
        kwargs.setdefault('output_file', os.path.join(self.tmp_dir, 'out.tif'))
        return PipelineConfig(**kwargs)

    def test_defaults(self):
        config = self.make()
        config.validate()
        self.assertEqual(config.output_format, 'GTiff')
        self.assertEqual(config.nodata_value, DEFAULT_NODATA_VALUE)
        self.assertFalse(config.needs_transformation)
        self.assertTrue(self.make(apply_nodata_mask=True).needs_transformation)
        self.assertTrue(self.make(target_crs='EPSG:3857').needs_transformation)

    def test_validation_errors(self):
        cases = {
            'empty input': dict(input_file=''),
            'empty output': dict(output_file=''),
            'missing input': dict(input_file=os.path.join(self.tmp_dir, 'missing.tif')),
            'inverted bounds': dict(clip_bounds=BoundingBox(10, 10, 5, 20)),
            'degenerate bounds': dict(clip_bounds=BoundingBox(0, 0, 0, 1)),
            'clip crs without bounds': dict(clip_crs='EPSG:4326'),
            'blank target crs': dict(target_crs='  '),
            'compression level': dict(compression_level=12),
            'resampling': dict(resample_alg='sharpen'),
        }
        for name, kwargs in cases.items():
            with self.subTest(name):
                with self.assertRaises(ConfigError):
                    self.make(**kwargs).validate()

    def test_config_is_immutable(self):
        config = self.make()
        with self.assertRaises(AttributeError):
            config.input_file = 'other.tif'

    def test_replace_ignores_none(self):
        config = self.make(target_crs='EPSG:3857')
        updated = config.replace(target_crs=None, output_format='HFA')
        self.assertEqual(updated.target_crs, 'EPSG:3857')
        self.assertEqual(updated.output_format, 'HFA')
        self.assertEqual(config.output_format, 'GTiff')

    def test_creation_options(self):
        self.assertEqual(self.make(compression_level=9).creation_options(),
                         ['COMPRESS=DEFLATE', 'ZLEVEL=9', 'TILED=YES'])
        self.assertEqual(self.make(output_format='MEM').creation_options(), [])

    def test_from_dict(self):
        config = PipelineConfig.from_dict({
            'input_file': 'in.tif',
            'output_file': 'out.tif',
            'clip_bounds': [1, 2, 3, 4],
            'nodata_value': '0',
            'apply_nodata_mask': True,
            'unknown_key': True,
        })
        self.assertEqual(config.clip_bounds, BoundingBox(1.0, 2.0, 3.0, 4.0))
        self.assertEqual(config.nodata_value, 0.0)
        self.assertTrue(config.apply_nodata_mask)

    def test_from_dict_rejects_bad_values(self):
        with self.assertRaises(ConfigError):
            PipelineConfig.from_dict({'clip_bounds': [1, 2]})
        with self.assertRaises(ConfigError):
            PipelineConfig.from_dict({'nodata_value': 'none'})
        with self.assertRaises(ConfigError):
            PipelineConfig.from_dict(['input.tif'])

    def test_from_dict_requires_real_booleans(self):
        for key, value in (('apply_nodata_mask', 'false'), ('overwrite', 1),
                           ('verbose', 'yes'), ('save_metadata', 0.0)):
            with self.subTest(key=key, value=value):
                with self.assertRaises(ConfigError):
                    PipelineConfig.from_dict({'input_file': 'in.tif', key: value})
        config = PipelineConfig.from_dict({'input_file': 'in.tif', 'overwrite': False})
        self.assertFalse(config.overwrite)

    def test_to_dict_round_trip(self):
        config = self.make(clip_bounds=BoundingBox(0, 0, 1, 1), target_crs='EPSG:3857')
        self.assertEqual(PipelineConfig.from_dict(config.to_dict()), config)


class TestConfigFiles(unittest.TestCase):
    """Test loading configurations from JSON and YAML files."""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.entries = [
            {'input_file': 'a.tif', 'output_file': 'a_out.tif', 'target_crs': 'EPSG:3857'},
            {'input_file': 'b.tif', 'output_file': 'b_out.tif',
             'clip_bounds': {'min_x': 0, 'min_y': 0, 'max_x': 5, 'max_y': 5}},
        ]

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def write_json(self, name, data):
        path = os.path.join(self.tmp_dir, name)
        with open(path, 'w') as f:
            json.dump(data, f)
        return path

    def test_single_object(self):
        path = self.write_json('single.json', self.entries[0])
        config = load_config(path)
        self.assertEqual(config.input_file, 'a.tif')
        self.assertEqual(config.target_crs, 'EPSG:3857')
        with self.assertRaises(ConfigError):
            load_config(path, index=1)

    def test_array_with_index(self):
        path = self.write_json('many.json', self.entries)
        self.assertEqual(load_config(path).input_file, 'a.tif')
        config = load_config(path, index=1)
        self.assertEqual(config.clip_bounds, BoundingBox(0, 0, 5, 5))
        with self.assertRaises(ConfigError):
            load_config(path, index=2)
        with self.assertRaises(ConfigError):
            load_config(path, index=-1)

    def test_load_all(self):
        path = self.write_json('many.json', self.entries)
        configs = load_all_configs(path)
        self.assertEqual([c.input_file for c in configs], ['a.tif', 'b.tif'])

    def test_yaml(self):
        path = os.path.join(self.tmp_dir, 'config.yaml')
        with open(path, 'w') as f:
            yaml.safe_dump(self.entries, f)
        self.assertEqual(load_config(path, index=1).input_file, 'b.tif')

    def test_unreadable_files(self):
        with self.assertRaises(ConfigError):
            load_config(os.path.join(self.tmp_dir, 'missing.json'))
        path = os.path.join(self.tmp_dir, 'broken.json')
        with open(path, 'w') as f:
            f.write('{"input_file": ')
        with self.assertRaises(ConfigError):
            load_config(path)


if __name__ == '__main__':
    unittest.main()
