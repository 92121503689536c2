"""
Numba frame kernel.

One nopython per-pixel function dispatches on the frame kind and returns
the RGBA colour of the pixel. It is driven either tile by tile (nogil, for
the thread pool) or by a single ``prange`` kernel over the frame rows.
"""

import time
import numpy as np
import numba
from numba import jit, njit, prange
from typing import Dict, Tuple
import logging

from ..core.fractal_types import (FractalKind, FrameRequest, LANDSCAPE_SPAN, PLANE_SPAN,
                                  pixel_offset)
from ..core.math_functions import escape_time_pixel
from ..core.shading import shade_pixel
from ..core.landscape import landscape_pixel
from ..core.precision import dd_add
from ..rendering.coloring import sample_palette, to_byte

logger = logging.getLogger(__name__)

MANDELBULB = int(FractalKind.MANDELBULB)
LANDSCAPE = int(FractalKind.LANDSCAPE)


@njit(cache=True, nogil=True)
def render_pixel(kind, shading, center, camera, palette, zoom, width, height, max_iter, x, y):
    """
    Colour of one pixel.

    Args:
        kind: FractalKind code
        shading: ShadingMode code (Mandelbulb only)
        center: Viewport centre as [re_hi, re_lo, im_hi, im_lo] float32
        camera: Packed camera [x, y, z, yaw, pitch, fov, power]
        palette: Expanded (N, 4) float32 palette
        zoom: Viewport zoom
        width, height: Frame size
        max_iter: Iteration budget
        x, y: Pixel position

    Returns:
        (r, g, b, a) floats
    """
    if kind == MANDELBULB:
        return shade_pixel(shading, palette, camera, x, y, width, height, max_iter)

    if kind == LANDSCAPE:
        ox, oy = pixel_offset(x, y, width, height, LANDSCAPE_SPAN / zoom)
        wx = np.float64(center[0]) + np.float64(center[1]) + np.float64(ox)
        wy = np.float64(center[2]) + np.float64(center[3]) + np.float64(oy)
        return landscape_pixel(wx, wy)

    ox, oy = pixel_offset(x, y, width, height, PLANE_SPAN / zoom)
    re_hi, re_lo = dd_add(center[0], center[1], ox, np.float32(0.0))
    im_hi, im_lo = dd_add(center[2], center[3], oy, np.float32(0.0))
    interior, _it, _smooth, t, _zr, _zi = escape_time_pixel(kind, re_hi, re_lo, im_hi, im_lo,
                                                            max_iter)
    if interior:
        return 0.0, 0.0, 0.0, 1.0
    return sample_palette(palette, t)


@njit(cache=True, nogil=True)
def render_tile(kind, shading, center, camera, palette, zoom, width, height, max_iter,
                x_start, x_end, y_start, y_end, out):
    """Write the pixels of one tile into the (H, W, 4) uint8 buffer."""
    for y in range(y_start, y_end):
        for x in range(x_start, x_end):
            r, g, b, a = render_pixel(kind, shading, center, camera, palette, zoom,
                                      width, height, max_iter, x, y)
            out[y, x, 0] = to_byte(r)
            out[y, x, 1] = to_byte(g)
            out[y, x, 2] = to_byte(b)
            out[y, x, 3] = to_byte(a)


@jit(nopython=True, parallel=True, cache=True)
def render_frame_kernel(kind, shading, center, camera, palette, zoom, width, height,
                        max_iter, out):
    """Whole-frame kernel with rows distributed by numba's thread pool."""
    for y in prange(height):
        for x in range(width):
            r, g, b, a = render_pixel(kind, shading, center, camera, palette, zoom,
                                      width, height, max_iter, x, y)
            out[y, x, 0] = to_byte(r)
            out[y, x, 1] = to_byte(g)
            out[y, x, 2] = to_byte(b)
            out[y, x, 3] = to_byte(a)


def kernel_arguments(request: FrameRequest) -> Tuple:
    """Positional kernel arguments for a frame request, up to the tile bounds."""
    return (int(request.kind), int(request.shading), request.center_words(),
            request.camera_array(), request.palette, float(request.zoom),
            int(request.width), int(request.height), int(request.max_iterations))


def allocate_frame(request: FrameRequest) -> np.ndarray:
    return np.zeros((request.height, request.width, 4), dtype=np.uint8)


def render_pixel_rgba(request: FrameRequest, x: int, y: int) -> np.ndarray:
    """Float RGBA colour of a single pixel of a request."""
    if not (0 <= x < request.width and 0 <= y < request.height):
        raise ValueError(f"Pixel ({x}, {y}) outside {request.width}x{request.height} frame")
    return np.array(render_pixel(*kernel_arguments(request), x, y), dtype=np.float64)


class NumbaAccelerator:
    """Renders whole frames with the parallel numba kernel."""

    def __init__(self):
        logger.debug(f"Numba {numba.__version__}, {numba.get_num_threads()} threads")

    def render(self, request: FrameRequest) -> np.ndarray:
        """
        Render a frame in one parallel kernel call.

        Args:
            request: Frame to render

        Returns:
            (H, W, 4) uint8 RGBA buffer
        """
        out = allocate_frame(request)
        start_time = time.time()
        render_frame_kernel(*kernel_arguments(request), out)
        logger.info(f"Rendered {request.kind.name} {request.width}x{request.height} "
                    f"with numba in {time.time() - start_time:.2f}s")
        return out

    def benchmark_performance(self, size=(256, 256), max_iter=256) -> Dict[str, float]:
        """
        Time a Mandelbrot render.

        Args:
            size: Image size for benchmark
            max_iter: Maximum iterations

        Returns:
            Dictionary with timing results
        """
        from ..core.fractal_types import Viewport2D
        from ..rendering.coloring import BUILTIN_PALETTES

        width, height = size
        palette = BUILTIN_PALETTES['classic'].expand()
        warmup = FrameRequest.for_viewport(FractalKind.MANDELBROT,
                                           Viewport2D.from_center(-0.5, 0.0, 1.0, 8, 8),
                                           max_iter, palette)
        self.render(warmup)

        request = FrameRequest.for_viewport(FractalKind.MANDELBROT,
                                            Viewport2D.from_center(-0.5, 0.0, 1.0, width, height),
                                            max_iter, palette)
        start_time = time.time()
        self.render(request)
        numba_time = time.time() - start_time

        return {
            "numba_time": numba_time,
            "max_iterations": max_iter,
            "pixels_per_second": (width * height) / max(numba_time, 1e-9),
        }


_numba_accelerator = None


def get_numba_accelerator() -> NumbaAccelerator:
    """Get the global Numba accelerator instance."""
    global _numba_accelerator
    if _numba_accelerator is None:
        _numba_accelerator = NumbaAccelerator()
    return _numba_accelerator
