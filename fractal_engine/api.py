"""
Main API classes for fractal rendering.

This module combines frame requests, the frame kernel backends, palettes
and image export into a renderer driven by a single RenderConfig, plus an
explorer that keeps a zoom/pan history between frames.
"""

import numpy as np
from typing import Optional, Union, Dict, Any, Tuple, List
from dataclasses import dataclass, asdict
from pathlib import Path
import logging
import time

from .core.fractal_types import (Camera3D, FractalKind, FractalRegistry, FrameRequest,
                                 ShadingMode, Viewport2D, clamp_iterations, validate_iterations)
from .core.precision import detect_precision_need
from .rendering.coloring import ColoringEngine
from .rendering.image_output import ImageExporter, RenderMetadata
from .acceleration.numba_backend import get_numba_accelerator
from .acceleration.parallel import FrameDispatcher, ParallelAccelerator, create_tile_grid

logger = logging.getLogger(__name__)

BACKENDS = ('threads', 'numba')


@dataclass
class RenderConfig:
    """Configuration for fractal rendering."""

    # Frame parameters
    fractal: str = 'mandelbrot'
    shading: str = 'distance_estimation'
    width: int = 1920
    height: int = 1080
    center: Tuple[float, float] = (-0.5, 0.0)
    zoom: float = 1.0
    max_iterations: int = 2048
    clamp_iterations: bool = False

    # Mandelbulb camera
    camera_position: Tuple[float, float, float] = (0.0, 1.0, 3.0)
    camera_yaw: float = 0.0
    camera_pitch: float = 0.3
    field_of_view: float = 1.0
    power: float = 8.0

    # Coloring
    color_palette: str = 'classic'
    palette_size: int = 256

    # Performance
    backend: str = 'threads'
    num_workers: Optional[int] = None
    tile_size: int = 64

    # Output
    output_format: str = 'png'
    jpeg_quality: int = 95
    save_metadata: bool = True
    save_raw_data: bool = False

    def __post_init__(self):
        self.center = tuple(self.center)
        self.camera_position = tuple(self.camera_position)

    def validate(self):
        """Validate configuration parameters."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Width and height must be positive")

        FractalKind.parse(self.fractal)
        ShadingMode.parse(self.shading)

        if self.clamp_iterations:
            self.max_iterations = clamp_iterations(self.max_iterations)
        validate_iterations(self.max_iterations)

        if len(self.center) != 2:
            raise ValueError("center must be (x, y)")
        if not self.zoom > 0:
            raise ValueError("zoom must be positive")
        if len(self.camera_position) != 3:
            raise ValueError("camera_position must be (x, y, z)")
        if not self.field_of_view > 0:
            raise ValueError("field_of_view must be positive")

        if self.palette_size < 1:
            raise ValueError("palette_size must be >= 1")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")
        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        if self.tile_size < 8:
            raise ValueError("tile_size must be >= 8")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be in [1, 100]")

    @property
    def kind(self) -> FractalKind:
        return FractalKind.parse(self.fractal)

    def viewport(self) -> Viewport2D:
        return Viewport2D.from_center(self.center[0], self.center[1], self.zoom,
                                      self.width, self.height)

    def camera(self) -> Camera3D:
        return Camera3D(self.camera_position, self.camera_yaw, self.camera_pitch,
                        self.field_of_view, self.power)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['center'] = list(self.center)
        data['camera_position'] = list(self.camera_position)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderConfig':
        return cls(**data)


class FrameKernel:
    """
    Renders frame requests into RGBA8 buffers.

    The 'threads' backend splits the frame into tiles on a thread pool and
    supports cancellation; the 'numba' backend runs one parallel kernel.
    """

    def __init__(self, backend: str = 'threads', max_workers: Optional[int] = None,
                 tile_size: int = 64):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")
        self.backend = backend
        self.tile_size = tile_size
        self.dispatcher = FrameDispatcher(ParallelAccelerator(max_workers, tile_size))

    def render(self, request: FrameRequest) -> np.ndarray:
        """
        Render one frame.

        Args:
            request: Immutable frame request

        Returns:
            (H, W, 4) uint8 RGBA buffer, row 0 at the top
        """
        if self.backend == 'numba':
            return get_numba_accelerator().render(request)
        return self.dispatcher.submit(request)

    def cancel(self) -> None:
        """Supersede the frame currently in flight."""
        self.dispatcher.cancel()


class FractalRenderer:
    """Main fractal rendering engine."""

    def __init__(self, config: Optional[RenderConfig] = None):
        """
        Initialize fractal renderer.

        Args:
            config: Rendering configuration (uses defaults if None)
        """
        self.config = config or RenderConfig()
        self.config.validate()

        self.coloring_engine = ColoringEngine()
        self.image_exporter = ImageExporter()
        self.kernel = FrameKernel(self.config.backend, self.config.num_workers,
                                  self.config.tile_size)

        logger.info(f"FractalRenderer initialized: {self.config.width}x{self.config.height}, "
                    f"backend={self.config.backend}")

    def build_request(self) -> FrameRequest:
        """Frame request for the current configuration."""
        kind = self.config.kind
        palette = None
        if kind is not FractalKind.LANDSCAPE:
            palette = self.coloring_engine.expand(self.config.color_palette,
                                                  self.config.palette_size)

        if kind.is_3d:
            return FrameRequest.for_camera(self.config.camera(), self.config.width,
                                           self.config.height, self.config.max_iterations,
                                           palette, self.config.shading)

        viewport = self.config.viewport()
        if kind is not FractalKind.LANDSCAPE:
            need = detect_precision_need(viewport.zoom, viewport.width)
            if need == 'extended':
                logger.info(f"Zoom {viewport.zoom:g} relies on extended precision")
            elif need == 'exhausted':
                logger.warning(f"Zoom {viewport.zoom:g} exceeds extended precision; "
                               f"adjacent pixels may coincide")
        return FrameRequest.for_viewport(kind, viewport, self.config.max_iterations, palette)

    def render(self, output_path: Optional[Union[str, Path]] = None) -> np.ndarray:
        """
        Render a frame.

        Args:
            output_path: Optional output file path

        Returns:
            (H, W, 4) uint8 RGBA buffer
        """
        start_time = time.time()
        request = self.build_request()
        logger.info(f"Starting render: {request.kind.name}")

        image = self.kernel.render(request)

        if output_path:
            self._save_image(image, Path(output_path), time.time() - start_time, request)
        return image

    def _save_image(self, image: np.ndarray, output_path: Path, render_time: float,
                    request: FrameRequest):
        """Save rendered image with metadata."""
        camera = None
        center = self.config.center
        if request.kind.is_3d:
            camera = {'position': list(self.config.camera_position),
                      'yaw': self.config.camera_yaw, 'pitch': self.config.camera_pitch,
                      'field_of_view': self.config.field_of_view, 'power': self.config.power}

        tiles = 0
        if self.config.backend == 'threads':
            tiles = len(create_tile_grid(request.width, request.height, self.config.tile_size))

        metadata = RenderMetadata(
            fractal_type=request.kind.name.lower(),
            resolution=(request.width, request.height),
            max_iterations=request.max_iterations,
            color_palette=self.config.color_palette,
            center=center,
            zoom=request.zoom,
            shading=request.shading.name.lower() if request.kind.is_3d else None,
            camera=camera,
            render_time_seconds=render_time,
            backend=self.config.backend,
            tiles_used=tiles,
        )

        if not output_path.suffix:
            output_path = output_path.with_suffix(f".{self.config.output_format}")

        if self.config.save_metadata:
            self.image_exporter.save_image(image, output_path, metadata, self.config.jpeg_quality)
        else:
            self.image_exporter.save_image(image, output_path, quality=self.config.jpeg_quality)

        if self.config.save_raw_data:
            self.image_exporter.save_raw_data(image, output_path.with_suffix('.npy'), metadata)

    def benchmark_performance(self) -> Dict[str, Any]:
        """
        Time the current configuration on both backends.

        Returns:
            Performance benchmark results
        """
        request = self.build_request()
        pixels = request.width * request.height
        results = {
            'config': {
                'fractal': request.kind.name.lower(),
                'resolution': f"{request.width}x{request.height}",
                'max_iterations': request.max_iterations,
            },
            'benchmarks': {},
        }

        for backend in BACKENDS:
            kernel = FrameKernel(backend, self.config.num_workers, self.config.tile_size)
            # First call compiles (or loads cached) kernels
            kernel.render(request.resized(8, 8))
            start_time = time.time()
            kernel.render(request)
            elapsed = time.time() - start_time
            results['benchmarks'][backend] = {
                'time': elapsed,
                'pixels_per_second': pixels / max(elapsed, 1e-9),
            }

        return results

    def update_config(self, **kwargs):
        """Update rendering configuration."""
        for key, value in kwargs.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                raise ValueError(f"Unknown configuration parameter: {key}")

        self.config.__post_init__()
        self.config.validate()

        if any(key in ('backend', 'num_workers', 'tile_size') for key in kwargs):
            self.kernel = FrameKernel(self.config.backend, self.config.num_workers,
                                      self.config.tile_size)


class FractalExplorer:
    """Zoom and pan exploration of a 2D fractal with view history."""

    def __init__(self, initial_config: Optional[RenderConfig] = None):
        """Initialize fractal explorer."""
        self.config = initial_config or RenderConfig(width=800, height=800)
        self.renderer = FractalRenderer(self.config)
        self.history: List[Dict[str, Any]] = []
        self.current_image: Optional[np.ndarray] = None

    def set_fractal(self, fractal: Union[FractalKind, str]):
        """Switch fractal kind and reset to its recommended view."""
        kind = FractalKind.parse(fractal)
        if kind.is_3d:
            raise ValueError("The explorer navigates 2D views only")
        self.config.fractal = kind.name.lower()
        self.reset_view()

    def render_current(self) -> np.ndarray:
        """Render current fractal with current settings."""
        self.current_image = self.renderer.render()
        return self.current_image

    def _push_history(self):
        self.history.append({
            'center': self.config.center,
            'zoom': self.config.zoom,
            'max_iterations': self.config.max_iterations,
        })

    def zoom_to_point(self, x: int, y: int, zoom_factor: float = 2.0):
        """
        Re-centre on a pixel and zoom in.

        Args:
            x, y: Pixel coordinates to zoom into
            zoom_factor: Zoom multiplication factor
        """
        if zoom_factor <= 0:
            raise ValueError("zoom_factor must be positive")

        self._push_history()
        re, im = self.config.viewport().pixel_coordinate(x, y)
        self.config.center = (re.to_float(), im.to_float())
        self.config.zoom *= zoom_factor

        # Deeper zooms need more iterations to resolve the boundary
        if self.config.zoom > 1000:
            self.config.max_iterations = clamp_iterations(int(self.config.max_iterations * 1.5))

        logger.info(f"Zoomed to {self.config.center} at zoom {self.config.zoom:g}")

    def zoom_out(self, zoom_factor: float = 0.5):
        """Zoom out from current view."""
        if zoom_factor <= 0:
            raise ValueError("zoom_factor must be positive")
        self._push_history()
        self.config.zoom *= zoom_factor
        logger.info(f"Zoomed out to {self.config.zoom:g}")

    def pan(self, dx: float, dy: float):
        """
        Pan the view by a number of pixels.

        Args:
            dx, dy: Pan amounts in pixels
        """
        self._push_history()
        viewport = self.config.viewport()
        pixel = viewport.scale / viewport.height
        self.config.center = (self.config.center[0] + dx * pixel,
                              self.config.center[1] + dy * pixel)

    def go_back(self) -> bool:
        """Return to previous view from history."""
        if not self.history:
            logger.warning("No history available")
            return False

        previous_state = self.history.pop()
        self.config.center = previous_state['center']
        self.config.zoom = previous_state['zoom']
        self.config.max_iterations = previous_state['max_iterations']
        logger.info("Returned to previous view")
        return True

    def reset_view(self):
        """Reset to the recommended view for the current fractal."""
        x, y, zoom = FractalRegistry.recommended_view(self.config.kind)
        self.config.center = (x, y)
        self.config.zoom = zoom
        self.history = []
        logger.info("Reset to default view")

    def adjust_iterations(self, new_iterations: int):
        """Set the iteration budget, clamped to the valid range."""
        self.config.max_iterations = clamp_iterations(new_iterations)
        logger.info(f"Set max iterations to {self.config.max_iterations}")

    def change_palette(self, palette_name: str):
        """Change color palette."""
        self.renderer.coloring_engine.get_palette(palette_name)
        self.config.color_palette = palette_name
        logger.info(f"Changed palette to {palette_name}")

    def get_exploration_info(self) -> Dict[str, Any]:
        """Get current exploration state information."""
        viewport = self.config.viewport()
        return {
            'fractal': self.config.kind.name.lower(),
            'center': self.config.center,
            'zoom': self.config.zoom,
            'max_iterations': self.config.max_iterations,
            'precision': detect_precision_need(viewport.zoom, viewport.width),
            'palette': self.config.color_palette,
            'history_depth': len(self.history),
            'pixels_per_unit': viewport.height / viewport.scale,
        }
