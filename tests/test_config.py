# -*- coding: utf-8 -*-
import json
import os
import tempfile
import unittest
from unittest import mock

import yaml

from fractal_engine.api import RenderConfig
from fractal_engine.io.config import (
    DEFAULT_PRESETS, ConfigManager, EnvironmentConfig, load_config_from_args
)


class Test_render_config(unittest.TestCase):

    def test_defaults_valid(self):
        config = RenderConfig()
        config.validate()
        self.assertEqual(config.center, (-0.5, 0.0))
        self.assertEqual(config.kind.name, "MANDELBROT")

    def test_invalid(self):
        for kwargs in ({'width': 0}, {'backend': 'cuda'}, {'fractal': 'unknown'},
                       {'max_iterations': 0}, {'zoom': -1.0}, {'tile_size': 4},
                       {'shading': 'phong'}, {'center': (0.0,)}):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError):
                    RenderConfig(**kwargs).validate()

    def test_clamp_iterations(self):
        config = RenderConfig(max_iterations=50000, clamp_iterations=True)
        config.validate()
        self.assertEqual(config.max_iterations, 10000)

    def test_dict_round_trip(self):
        config = RenderConfig(fractal='julia', center=(0.1, 0.2), camera_position=(1, 2, 3))
        data = config.to_dict()
        self.assertEqual(data['center'], [0.1, 0.2])
        self.assertEqual(RenderConfig.from_dict(data), config)


class Test_environment(unittest.TestCase):

    def test_overrides(self):
        environ = {
            'FRACTAL_ENGINE_MAX_ITERATIONS': '500',
            'FRACTAL_ENGINE_SAVE_RAW_DATA': 'yes',
            'FRACTAL_ENGINE_CENTER': '0.1,0.2',
            'FRACTAL_ENGINE_NUM_WORKERS': '4',
            'FRACTAL_ENGINE_COLOR_PALETTE': 'fire',
            'UNRELATED': '1',
        }
        overrides = EnvironmentConfig.overrides(environ)
        self.assertEqual(overrides, {
            'max_iterations': 500,
            'save_raw_data': True,
            'center': [0.1, 0.2],
            'num_workers': 4,
            'color_palette': 'fire',
        })

    def test_invalid_value(self):
        with self.assertRaises(ValueError):
            EnvironmentConfig.overrides({'FRACTAL_ENGINE_WIDTH': 'wide'})
        with self.assertRaises(ValueError):
            EnvironmentConfig.overrides({'FRACTAL_ENGINE_SAVE_METADATA': 'maybe'})


class Test_config_manager(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for key in list(os.environ):
            if key.startswith('FRACTAL_ENGINE_'):
                del os.environ[key]

    def path(self, name):
        return os.path.join(self.tmp.name, name)

    def test_yaml_and_json_round_trip(self):
        manager = ConfigManager()
        config = {'render': {'fractal': 'julia', 'max_iterations': 300},
                  'presets': {'deep': {'zoom': 1e6, 'center': [-0.75, 0.1]}}}
        for name in ('config.yaml', 'config.json'):
            with self.subTest(name=name):
                manager.save_config(config, self.path(name))
                self.assertEqual(manager.load_config(self.path(name)), config)

        with open(self.path('config.yaml')) as f:
            self.assertEqual(yaml.safe_load(f), config)
        with open(self.path('config.json')) as f:
            self.assertEqual(json.load(f), config)

    def test_missing_sections(self):
        with open(self.path('empty.yaml'), 'w') as f:
            f.write('')
        self.assertEqual(ConfigManager(self.path('empty.yaml')).load_config(),
                         {'render': {}, 'presets': {}})
        self.assertEqual(ConfigManager().load_config(), {'render': {}, 'presets': {}})

    def test_not_a_mapping(self):
        with open(self.path('list.yaml'), 'w') as f:
            f.write('- 1\n- 2\n')
        with self.assertRaises(ValueError):
            ConfigManager().load_config(self.path('list.yaml'))

    def test_presets(self):
        manager = ConfigManager()
        config = {'render': {}, 'presets': {'mine': {'fractal': 'tricorn'}}}
        names = manager.list_presets(config)
        self.assertEqual(names[:len(DEFAULT_PRESETS)], list(DEFAULT_PRESETS))
        self.assertEqual(names[-1], 'mine')
        self.assertEqual(manager.get_preset('mine', config), {'fractal': 'tricorn'})
        with self.assertRaises(ValueError):
            manager.get_preset('nope')

    def test_precedence(self):
        manager = ConfigManager()
        config = {'render': {'fractal': 'julia', 'max_iterations': 100, 'width': 640}}

        render_config = manager.create_render_config(config)
        self.assertEqual((render_config.fractal, render_config.max_iterations), ('julia', 100))

        render_config = manager.create_render_config(config, 'newton')
        self.assertEqual(render_config.fractal, 'newton')
        self.assertEqual(render_config.max_iterations, 64)
        self.assertEqual(render_config.width, 640)

        with mock.patch.dict(os.environ, {'FRACTAL_ENGINE_MAX_ITERATIONS': '77'}):
            render_config = manager.create_render_config(config, 'newton')
        self.assertEqual(render_config.max_iterations, 77)

    def test_validate_config(self):
        manager = ConfigManager()
        self.assertEqual(manager.validate_config({'render': {'width': 64}}), [])
        errors = manager.validate_config({
            'render': {'width': -1},
            'presets': {'a': {'colour': 'red'}, 'b': 'not a mapping'},
        })
        self.assertEqual(len(errors), 3)
        self.assertTrue(errors[0].startswith('render:'))
        self.assertIn('colour', errors[1])

    def test_template(self):
        manager = ConfigManager()
        manager.export_config_template(self.path('template.yaml'))
        loaded = manager.load_config(self.path('template.yaml'))
        self.assertEqual(manager.validate_config(loaded), [])
        self.assertEqual(set(loaded['presets']), set(DEFAULT_PRESETS))

    def test_load_from_args(self):
        with open(self.path('c.json'), 'w') as f:
            json.dump({'render': {'width': 320, 'height': 200}}, f)
        render_config = load_config_from_args(self.path('c.json'), 'landscape')
        self.assertEqual((render_config.width, render_config.height), (320, 200))
        self.assertEqual(render_config.fractal, 'landscape')


if __name__ == "__main__":
    unittest.main()
