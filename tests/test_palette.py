# -*- coding: utf-8 -*-
import os
import tempfile
import unittest

import numpy as np

from fractal_engine.core.fractal_types import FractalKind, FrameRequest, Viewport2D
from fractal_engine.rendering.coloring import (
    BUILTIN_PALETTES, ColoringEngine, ColorStop, Palette, PaletteError,
    sample, sample_index, to_rgba8, validate_palette_array
)


class Test_sampler(unittest.TestCase):

    def test_end_points(self):
        for n in (1, 2, 7, 256):
            self.assertEqual(sample_index(0.0, n), 0)
            self.assertEqual(sample_index(1.0, n), n - 1)

    def test_monotone(self):
        indices = [sample_index(t, 256) for t in np.linspace(0.0, 1.0, 1001)]
        self.assertTrue(all(b >= a for a, b in zip(indices, indices[1:])))

    def test_nearest(self):
        self.assertEqual(sample_index(0.5, 3), 1)
        self.assertEqual(sample_index(0.2, 11), 2)

    def test_out_of_range(self):
        self.assertEqual(sample_index(-3.0, 16), 0)
        self.assertEqual(sample_index(7.0, 16), 15)
        self.assertEqual(sample_index(float("nan"), 16), 0)
        with self.assertRaises(PaletteError):
            sample_index(0.5, 0)

    def test_sample(self):
        palette = np.array([[0, 0, 0, 1], [1, 0, 0, 1], [0, 0, 1, 1]], dtype=np.float32)
        np.testing.assert_array_equal(sample(0.9, palette), [0, 0, 1, 1])
        np.testing.assert_array_equal(sample(0.5, palette.ravel()), [1, 0, 0, 1])

    def test_to_rgba8(self):
        out = to_rgba8(np.array([0.0, 0.5, 1.0, 1.5, -1.0, np.nan]))
        np.testing.assert_array_equal(out, [0, 128, 255, 255, 0, 0])
        self.assertEqual(out.dtype, np.uint8)


class Test_palette_validation(unittest.TestCase):

    def test_palette_array(self):
        self.assertEqual(validate_palette_array(np.zeros(8)).shape, (2, 4))
        self.assertEqual(validate_palette_array(np.zeros((3, 4))).dtype, np.float32)
        for bad in (None, np.zeros(0), np.zeros((0, 4)), np.zeros((3, 3)), np.zeros(6),
                    np.array([[0.0, 0.0, np.nan, 1.0]])):
            with self.assertRaises(PaletteError):
                validate_palette_array(bad)

    def test_request_rejects_empty_palette(self):
        viewport = Viewport2D.from_center(-0.5, 0.0, 1.0, 8, 8)
        with self.assertRaises(PaletteError):
            FrameRequest.for_viewport(FractalKind.MANDELBROT, viewport, 100, np.zeros((0, 4)))
        # PaletteError is a ValueError
        with self.assertRaises(ValueError):
            FrameRequest.for_viewport(FractalKind.MANDELBROT, viewport, 100, None)

    def test_stops(self):
        with self.assertRaises(PaletteError):
            Palette("empty", [])
        with self.assertRaises(PaletteError):
            Palette("decreasing", [(0.5, 0, 0, 0), (0.2, 0, 0, 0)])
        with self.assertRaises(PaletteError):
            Palette("channel", [(0.0, 300, 0, 0)])
        with self.assertRaises(PaletteError):
            Palette("position", [(1.5, 0, 0, 0)])


class Test_palette_expansion(unittest.TestCase):

    def test_expand(self):
        table = BUILTIN_PALETTES['fire'].expand(256)
        self.assertEqual(table.shape, (256, 4))
        self.assertEqual(table.dtype, np.float32)
        np.testing.assert_allclose(table[0], [0, 0, 0, 1])
        np.testing.assert_allclose(table[-1], [1, 1, 0, 1])
        np.testing.assert_array_equal(table[:, 3], 1.0)

    def test_partial_coverage_clamps(self):
        palette = Palette("partial", [(0.25, 255, 0, 0), (0.75, 0, 0, 255)])
        table = palette.expand(5)
        np.testing.assert_allclose(table[0], [1, 0, 0, 1])
        np.testing.assert_allclose(table[2], [0.5, 0, 0.5, 1], atol=1e-6)
        np.testing.assert_allclose(table[4], [0, 0, 1, 1])

    def test_single_entry(self):
        table = BUILTIN_PALETTES['grayscale'].expand(1)
        np.testing.assert_allclose(table, [[0, 0, 0, 1]])
        with self.assertRaises(PaletteError):
            BUILTIN_PALETTES['grayscale'].expand(0)


class Test_palette_files(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def test_json_round_trip(self):
        path = os.path.join(self.tmp.name, "ocean.json")
        BUILTIN_PALETTES['ocean'].save_to_file(path)
        loaded = Palette.load_from_file(path)
        self.assertEqual(loaded, BUILTIN_PALETTES['ocean'])

    def test_gpl(self):
        path = os.path.join(self.tmp.name, "three.gpl")
        Palette("Three", [ColorStop(0.0, 255, 0, 0), ColorStop(0.2, 0, 255, 0),
                          ColorStop(1.0, 0, 0, 255)]).save_to_file(path)
        loaded = Palette.load_from_file(path)
        self.assertEqual(loaded.name, "Three")
        self.assertEqual([s.position for s in loaded.stops], [0.0, 0.5, 1.0])
        self.assertEqual((loaded.stops[1].r, loaded.stops[1].g), (0, 255))

    def test_malformed(self):
        path = os.path.join(self.tmp.name, "bad.json")
        with open(path, "w") as f:
            f.write('{"name": "bad", "stops": [[0.0, 1, 2]]}')
        with self.assertRaises(PaletteError):
            Palette.load_from_file(path)
        with open(path, "w") as f:
            f.write('not json')
        with self.assertRaises(PaletteError):
            Palette.load_from_file(path)


class Test_coloring_engine(unittest.TestCase):

    def test_lookup(self):
        engine = ColoringEngine()
        self.assertIs(engine.get_palette("Ultra Fractal"), BUILTIN_PALETTES['ultra_fractal'])
        self.assertIs(engine.get_palette("CLASSIC"), BUILTIN_PALETTES['classic'])
        with self.assertRaises(PaletteError):
            engine.get_palette("no_such_palette")
        self.assertEqual(engine.expand("fire", 16).shape, (16, 4))

    def test_add_palette(self):
        engine = ColoringEngine()
        engine.add_palette("My Palette", Palette("Mine", [(0.0, 1, 2, 3)]))
        self.assertIn("my_palette", engine.list_palettes())
        self.assertEqual(engine.get_palette("my-palette").name, "Mine")

    def test_matplotlib(self):
        palette = ColoringEngine().get_palette("mpl:viridis")
        self.assertEqual(palette.name, "From_viridis")
        self.assertEqual(len(palette.stops), 32)
        cmap = palette.to_matplotlib_colormap(16)
        self.assertEqual(cmap.N, 16)
        with self.assertRaises(PaletteError):
            Palette.from_matplotlib("not_a_colormap")


if __name__ == "__main__":
    unittest.main()
