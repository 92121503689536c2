# -*- coding: utf-8 -*-
import unittest
from dataclasses import replace

import numpy as np

from fractal_engine.api import FrameKernel
from fractal_engine.core.fractal_types import (
    Camera3D, FractalKind, FrameRequest, ShadingMode, Viewport2D
)
from fractal_engine.acceleration.numba_backend import NumbaAccelerator, render_pixel_rgba
from fractal_engine.acceleration.parallel import (
    FrameCancelled, FrameDispatcher, ParallelAccelerator, create_tile_grid
)
from fractal_engine.rendering.coloring import BUILTIN_PALETTES


def make_request(kind=FractalKind.MANDELBROT, center=(-0.5, 0.0), width=16, height=12,
                 max_iter=100):
    palette = BUILTIN_PALETTES['classic'].expand(64)
    if FractalKind.parse(kind).is_3d:
        camera = Camera3D(position=(0.0, 0.0, 3.0), pitch=0.0)
        return FrameRequest.for_camera(camera, width, height, max_iter, palette,
                                       ShadingMode.SIMPLE_SHADING)
    viewport = Viewport2D.from_center(center[0], center[1], 1.0, width, height)
    return FrameRequest.for_viewport(kind, viewport, max_iter, palette)


class Test_frame_request(unittest.TestCase):

    def test_validation(self):
        palette = BUILTIN_PALETTES['classic'].expand(8)
        with self.assertRaises(ValueError):
            FrameRequest(kind=FractalKind.MANDELBULB, width=8, height=8, max_iterations=10,
                         palette=palette)
        with self.assertRaises(ValueError):
            FrameRequest(kind=FractalKind.MANDELBROT, width=8, height=8, max_iterations=10,
                         palette=palette)
        with self.assertRaises(ValueError):
            make_request(max_iter=0)

    def test_size_must_match_viewport(self):
        palette = BUILTIN_PALETTES['classic'].expand(8)
        viewport = Viewport2D.from_center(-0.5, 0.0, 1.0, 16, 12)
        with self.assertRaises(ValueError):
            FrameRequest(kind=FractalKind.MANDELBROT, width=8, height=8, max_iterations=10,
                         palette=palette, viewport=viewport)

    def test_resized(self):
        request = make_request(width=16, height=12).resized(8, 6)
        self.assertEqual((request.width, request.height), (8, 6))
        self.assertEqual((request.viewport.width, request.viewport.height), (8, 6))
        self.assertEqual(FrameKernel('threads').render(request).shape, (6, 8, 4))

        bulb = make_request(FractalKind.MANDELBULB).resized(4, 4)
        self.assertEqual((bulb.width, bulb.height), (4, 4))
        self.assertIsNone(bulb.viewport)

    def test_landscape_needs_no_palette(self):
        viewport = Viewport2D.from_center(0.0, 0.0, 1.0, 8, 8)
        request = FrameRequest.for_viewport("landscape", viewport, 10, None)
        self.assertEqual(request.palette.shape, (1, 4))

    def test_center_words(self):
        request = make_request(center=(-0.743643887037151, 0.131825904205330))
        words = request.center_words()
        self.assertEqual(words.dtype, np.float32)
        np.testing.assert_allclose(float(words[0]) + float(words[1]), -0.743643887037151,
                                   rtol=1e-13)


class Test_tile_grid(unittest.TestCase):

    def test_cover_exactly_once(self):
        coverage = np.zeros((70, 100), dtype=np.int32)
        tiles = create_tile_grid(100, 70, 32)
        self.assertEqual(len(tiles), 4 * 3)
        for tile in tiles:
            coverage[tile.y_start:tile.y_end, tile.x_start:tile.x_end] += 1
        np.testing.assert_array_equal(coverage, 1)

    def test_invalid_tile_size(self):
        with self.assertRaises(ValueError):
            create_tile_grid(10, 10, 0)


class Test_frame_kernel(unittest.TestCase):

    def test_shape_and_alpha(self):
        for kind in FractalKind:
            with self.subTest(kind=kind):
                image = FrameKernel('threads', max_workers=2, tile_size=8).render(
                    make_request(kind, width=12, height=10, max_iter=16))
                self.assertEqual(image.shape, (10, 12, 4))
                self.assertEqual(image.dtype, np.uint8)
                np.testing.assert_array_equal(image[..., 3], 255)

    def test_interior_black(self):
        image = FrameKernel('threads', tile_size=8).render(make_request())
        # pixel (8, 6) is the centre (-0.5, 0)
        np.testing.assert_array_equal(image[6, 8], [0, 0, 0, 255])

    def test_backends_agree(self):
        threads = FrameKernel('threads', max_workers=3, tile_size=8)
        numba_kernel = FrameKernel('numba')
        for kind in (FractalKind.MANDELBROT, FractalKind.JULIA, FractalKind.NEWTON,
                     FractalKind.LANDSCAPE, FractalKind.MANDELBULB):
            with self.subTest(kind=kind):
                request = make_request(kind, center=(0.0, 0.0), max_iter=32)
                np.testing.assert_array_equal(threads.render(request),
                                              numba_kernel.render(request))

    def test_deterministic(self):
        kernel = FrameKernel('threads', max_workers=4, tile_size=8)
        request = make_request(FractalKind.BURNING_SHIP, center=(-0.5, -0.5))
        np.testing.assert_array_equal(kernel.render(request), kernel.render(request))

    def test_pixel_matches_frame(self):
        request = make_request(FractalKind.TRICORN, center=(-0.3, 0.0))
        image = NumbaAccelerator().render(request)
        rgba = render_pixel_rgba(request, 3, 5)
        np.testing.assert_array_equal(image[5, 3],
                                      np.floor(np.clip(rgba, 0.0, 1.0) * 255.0 + 0.5))
        with self.assertRaises(ValueError):
            render_pixel_rgba(request, 16, 0)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            FrameKernel('cuda')


class Test_cancellation(unittest.TestCase):

    def test_should_continue(self):
        accelerator = ParallelAccelerator(max_workers=2, tile_size=8)
        with self.assertRaises(FrameCancelled):
            accelerator.render(make_request(), should_continue=lambda: False)

    def test_superseded_frame(self):

        class SupersedingAccelerator(ParallelAccelerator):
            """Supersedes every frame before its first tile starts."""
            dispatcher = None

            def render(self, request, should_continue=None):
                self.dispatcher.cancel()
                return super().render(request, should_continue)

        accelerator = SupersedingAccelerator(max_workers=2, tile_size=8)
        dispatcher = FrameDispatcher(accelerator)
        accelerator.dispatcher = dispatcher
        with self.assertRaises(FrameCancelled):
            dispatcher.submit(make_request())

    def test_generations(self):
        dispatcher = FrameDispatcher(ParallelAccelerator(max_workers=2, tile_size=8))
        request = make_request()
        first = dispatcher.submit(request)
        second = dispatcher.submit(replace(request, frame_id=99))
        self.assertEqual(dispatcher.generation, 2)
        np.testing.assert_array_equal(first, second)


if __name__ == "__main__":
    unittest.main()
