# -*- coding: utf-8 -*-
import os
import tempfile
import unittest

import numpy as np
from PIL import Image

from fractal_engine.api import FractalRenderer, RenderConfig
from fractal_engine.rendering.image_output import ImageExporter, RenderMetadata


def small_config(**kwargs):
    params = dict(width=16, height=12, max_iterations=60, tile_size=8)
    params.update(kwargs)
    return RenderConfig(**params)


class Test_export(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.exporter = ImageExporter()
        self.image = np.zeros((6, 5, 4), dtype=np.uint8)
        self.image[..., 0] = np.arange(5, dtype=np.uint8) * 50
        self.image[..., 3] = 255

    def path(self, name):
        return os.path.join(self.tmp.name, name)

    def test_png_metadata_from_renderer(self):
        renderer = FractalRenderer(small_config(fractal='julia', color_palette='ocean'))
        image = renderer.render(self.path('julia.png'))

        with Image.open(self.path('julia.png')) as img:
            self.assertEqual(img.mode, 'RGBA')
            np.testing.assert_array_equal(np.asarray(img), image)

        metadata = self.exporter.extract_metadata_from_image(self.path('julia.png'))
        self.assertEqual(metadata.fractal_type, 'julia')
        self.assertEqual(metadata.resolution, (16, 12))
        self.assertEqual(metadata.color_palette, 'ocean')
        self.assertEqual(metadata.max_iterations, 60)
        self.assertIsNone(metadata.camera)

    def test_mandelbulb_metadata(self):
        renderer = FractalRenderer(small_config(fractal='mandelbulb', width=8, height=8,
                                                max_iterations=8, shading='ray_traced'))
        renderer.render(self.path('bulb.png'))
        metadata = self.exporter.extract_metadata_from_image(self.path('bulb.png'))
        self.assertEqual(metadata.shading, 'ray_traced')
        self.assertEqual(metadata.camera['position'], [0.0, 1.0, 3.0])

    def test_tiff(self):
        metadata = RenderMetadata('mandelbrot', (5, 6), 100, 'classic')
        self.exporter.save_image(self.image, self.path('img.tiff'), metadata)
        with Image.open(self.path('img.tiff')) as img:
            np.testing.assert_array_equal(np.asarray(img), self.image)
        loaded = self.exporter.extract_metadata_from_image(self.path('img.tiff'))
        self.assertEqual(loaded, metadata)

    def test_jpeg_companion(self):
        metadata = RenderMetadata('newton', (5, 6), 64, 'fire')
        self.exporter.save_image(self.image, self.path('img.jpg'), metadata, quality=90)
        self.assertTrue(os.path.exists(self.path('img.json')))
        with Image.open(self.path('img.jpg')) as img:
            self.assertEqual(img.mode, 'RGB')
        self.assertEqual(self.exporter.extract_metadata_from_image(self.path('img.jpg')),
                         metadata)

    def test_float_rgb_input(self):
        rgb = np.full((4, 3, 3), 0.5)
        self.exporter.save_image(rgb, self.path('rgb.png'))
        with Image.open(self.path('rgb.png')) as img:
            data = np.asarray(img)
        self.assertEqual(data.shape, (4, 3, 4))
        np.testing.assert_array_equal(data[..., :3], 128)
        np.testing.assert_array_equal(data[..., 3], 255)
        self.assertIsNone(self.exporter.extract_metadata_from_image(self.path('rgb.png')))

    def test_raw_round_trip(self):
        metadata = RenderMetadata('tricorn', (5, 6), 10, 'classic', center=(-0.3, 0.0))
        path = self.exporter.save_raw_data(self.image, self.path('raw'), metadata)
        self.assertTrue(str(path).endswith('.npy'))
        image, loaded = self.exporter.load_raw_data(path)
        np.testing.assert_array_equal(image, self.image)
        self.assertEqual(loaded, metadata)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            self.exporter.save_image(self.image, self.path('img.bmp'))
        with self.assertRaises(ValueError):
            self.exporter.save_image(np.zeros((4, 4)), self.path('img.png'))


if __name__ == "__main__":
    unittest.main()
