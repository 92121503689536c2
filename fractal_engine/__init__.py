"""
Fractal evaluation engine.

Renders escape-time fractals (Mandelbrot, Julia, Burning Ship, Tricorn,
Newton, Phoenix, Barnsley fern) with double-single extended precision, the
ray-marched Mandelbulb with three shading modes, and a procedural landscape.

Key Features:
- Extended precision centre coordinates for deep 2D zooms
- Numba-compiled per-pixel kernels shared by every backend
- Tile-parallel rendering on a thread pool with frame cancellation
- Palette sampling from built-in, file or matplotlib palettes
- PNG/TIFF/JPEG export with embedded render metadata

Example usage:
    >>> from fractal_engine import FractalRenderer, RenderConfig
    >>> config = RenderConfig(fractal='mandelbrot', width=800, height=600)
    >>> image = FractalRenderer(config).render('mandelbrot.png')
"""

__version__ = "1.0.0"
__author__ = "Fractal Engine Team"

from fractal_engine.core.fractal_types import (
    FractalKind, ShadingMode, Viewport2D, Camera3D, FrameRequest, FractalRegistry
)
from fractal_engine.core.math_functions import EscapeTimeEvaluator, evaluate_point
from fractal_engine.rendering.coloring import ColoringEngine, Palette, PaletteError
from fractal_engine.rendering.image_output import ImageExporter, RenderMetadata
from fractal_engine.io.config import ConfigManager

# Main API classes
from fractal_engine.api import FractalRenderer, RenderConfig, FrameKernel, FractalExplorer

__all__ = [
    "FractalRenderer",
    "RenderConfig",
    "FrameKernel",
    "FractalExplorer",
    "FractalKind",
    "ShadingMode",
    "Viewport2D",
    "Camera3D",
    "FrameRequest",
    "FractalRegistry",
    "EscapeTimeEvaluator",
    "evaluate_point",
    "ColoringEngine",
    "Palette",
    "PaletteError",
    "ImageExporter",
    "RenderMetadata",
    "ConfigManager",
]
