"""
Fractal selectors and per-frame parameter types.

This module defines the closed set of frame kinds the engine can evaluate,
the Mandelbulb shading modes, and the immutable viewport, camera and frame
request snapshots handed to the frame kernel.
"""

import numpy as np
from numba import njit
from enum import IntEnum
from typing import Dict, Optional, Tuple
from dataclasses import dataclass, field, replace
import math
import logging

from .precision import ExtendedScalar, split, dd_add

logger = logging.getLogger(__name__)

MIN_ITERATIONS = 1
MAX_ITERATIONS = 10000

# Complex-plane span of a zoom-1 viewport, and world span of a landscape view
PLANE_SPAN = 4.0
LANDSCAPE_SPAN = 10.0


class FractalKind(IntEnum):
    """Closed set of frame kinds dispatched by the frame kernel."""

    MANDELBROT = 0
    JULIA = 1
    BURNING_SHIP = 2
    TRICORN = 3
    NEWTON = 4
    PHOENIX = 5
    BARNSLEY_FERN = 6
    MANDELBULB = 7
    LANDSCAPE = 8

    @property
    def is_3d(self) -> bool:
        return self is FractalKind.MANDELBULB

    @classmethod
    def parse(cls, name: str) -> 'FractalKind':
        """
        Parse a fractal name.

        Accepts enum names ('BURNING_SHIP'), snake case ('burning_ship') and
        the camel case used by palette/preset files ('BurningShip').
        """
        if isinstance(name, cls):
            return name
        key = str(name).strip().replace('-', '_').replace(' ', '_')
        normalized = key.replace('_', '').lower()
        for kind in cls:
            if kind.name.replace('_', '').lower() == normalized:
                return kind
        available = ', '.join(kind.name.lower() for kind in cls)
        raise ValueError(f"Unknown fractal type '{name}'. Available: {available}")


class ShadingMode(IntEnum):
    """Shading modes for the ray-marched Mandelbulb."""

    DISTANCE_ESTIMATION = 0
    SIMPLE_SHADING = 1
    RAY_TRACED = 2

    @classmethod
    def parse(cls, name: str) -> 'ShadingMode':
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().replace('-', '').replace('_', '').replace(' ', '').lower()
        for mode in cls:
            if mode.name.replace('_', '').lower() == normalized:
                return mode
        available = ', '.join(mode.name.lower() for mode in cls)
        raise ValueError(f"Unknown shading mode '{name}'. Available: {available}")


FRACTAL_DESCRIPTIONS: Dict[FractalKind, str] = {
    FractalKind.MANDELBROT: "Mandelbrot set: z_{n+1} = z_n^2 + c, z_0 = 0, c = pixel",
    FractalKind.JULIA: "Julia set: z_{n+1} = z_n^2 + c, z_0 = pixel, c = -0.4 + 0.6i",
    FractalKind.BURNING_SHIP: "Burning Ship: z_{n+1} = (|Re(z_n)| + i|Im(z_n)|)^2 + c",
    FractalKind.TRICORN: "Tricorn: z_{n+1} = conj(z_n)^2 + c",
    FractalKind.NEWTON: "Newton fractal for z^3 - 1 = 0, coloured by convergence speed",
    FractalKind.PHOENIX: "Phoenix: z_{n+1} = z_n^2 + c + 0.56667 z_{n-1}",
    FractalKind.BARNSLEY_FERN: "Barnsley fern density approximation along a parametric curve",
    FractalKind.MANDELBULB: "Mandelbulb (power 8) ray marched with a distance estimator",
    FractalKind.LANDSCAPE: "Procedural landscape: terrain, water, roads, buildings and clouds",
}


@njit(cache=True, nogil=True)
def pixel_offset(x, y, width, height, scale):
    """
    Offset of a pixel from the viewport centre, in float32.

    The horizontal offset is stretched by the aspect ratio so that pixels
    stay square; row 0 maps to the most negative vertical offset.
    """
    w = np.float32(width)
    h = np.float32(height)
    half = np.float32(0.5)
    aspect = np.float32(w / h)
    s = np.float32(scale)
    ox = np.float32(np.float32(np.float32(np.float32(x) / w) - half) * s * aspect)
    oy = np.float32(np.float32(np.float32(np.float32(y) / h) - half) * s)
    return ox, oy


def validate_iterations(max_iterations: int) -> int:
    """Validate an iteration budget, returning it as an int."""
    if int(max_iterations) != max_iterations:
        raise ValueError(f"max_iterations must be an integer, got {max_iterations!r}")
    max_iterations = int(max_iterations)
    if not MIN_ITERATIONS <= max_iterations <= MAX_ITERATIONS:
        raise ValueError(f"max_iterations must be in [{MIN_ITERATIONS}, {MAX_ITERATIONS}], "
                         f"got {max_iterations}")
    return max_iterations


def clamp_iterations(max_iterations: int) -> int:
    """Clamp an iteration budget into the valid range."""
    return int(min(MAX_ITERATIONS, max(MIN_ITERATIONS, int(max_iterations))))


@dataclass(frozen=True)
class Viewport2D:
    """Complex-plane viewport with an extended-precision centre."""

    center_real: ExtendedScalar
    center_imag: ExtendedScalar
    zoom: float = 1.0
    width: int = 1920
    height: int = 1080

    def __post_init__(self):
        if not (self.zoom > 0 and math.isfinite(self.zoom)):
            raise ValueError("zoom must be positive and finite")
        for name, word in (('center_real', self.center_real), ('center_imag', self.center_imag)):
            if not (np.isfinite(word.high) and np.isfinite(word.low)):
                raise ValueError(f"{name} is outside the float32 range: {word}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Width and height must be positive")

    @classmethod
    def from_center(cls, center_x: float, center_y: float, zoom: float = 1.0,
                    width: int = 1920, height: int = 1080) -> 'Viewport2D':
        """Create a viewport from float64 centre coordinates."""
        return cls(split(center_x), split(center_y), float(zoom), int(width), int(height))

    @classmethod
    def default(cls) -> 'Viewport2D':
        """Default Mandelbrot view."""
        return cls.from_center(-0.5, 0.0, 1.0, 1920, 1080)

    @property
    def center(self) -> Tuple[float, float]:
        return self.center_real.to_float(), self.center_imag.to_float()

    @property
    def scale(self) -> float:
        return PLANE_SPAN / self.zoom

    def pixel_coordinate(self, x: int, y: int,
                         span: float = PLANE_SPAN) -> Tuple[ExtendedScalar, ExtendedScalar]:
        """
        Map a pixel to its extended-precision plane coordinate.

        Args:
            x, y: Pixel position (row 0 at the top)
            span: Plane span covered at zoom 1

        Returns:
            Tuple of (real, imag) extended scalars
        """
        ox, oy = pixel_offset(x, y, self.width, self.height, span / self.zoom)
        re = dd_add(self.center_real.high, self.center_real.low, ox, np.float32(0.0))
        im = dd_add(self.center_imag.high, self.center_imag.low, oy, np.float32(0.0))
        return ExtendedScalar(*re), ExtendedScalar(*im)

    def zoomed(self, factor: float) -> 'Viewport2D':
        """Return a copy zoomed by ``factor``."""
        return Viewport2D(self.center_real, self.center_imag, self.zoom * factor,
                          self.width, self.height)


@dataclass(frozen=True)
class Camera3D:
    """First-person camera for the ray-marched Mandelbulb."""

    position: Tuple[float, float, float] = (0.0, 1.0, 3.0)
    yaw: float = 0.0
    pitch: float = 0.3
    field_of_view: float = 1.0
    power: float = 8.0

    def __post_init__(self):
        if len(self.position) != 3:
            raise ValueError("position must be (x, y, z)")
        if not self.field_of_view > 0:
            raise ValueError("field_of_view must be positive")
        object.__setattr__(self, 'position', tuple(float(v) for v in self.position))

    @classmethod
    def default(cls) -> 'Camera3D':
        return cls()

    def to_array(self) -> np.ndarray:
        """Pack as [x, y, z, yaw, pitch, fov, power] for the kernels."""
        return np.array([*self.position, self.yaw, self.pitch,
                         self.field_of_view, self.power], dtype=np.float64)


@dataclass(frozen=True)
class FrameRequest:
    """
    Immutable snapshot of everything needed to render one frame.

    2D kinds (and the landscape) carry a viewport; the Mandelbulb carries a
    camera and a shading mode. The palette is the pre-expanded (N, 4)
    float32 RGBA array.
    """

    kind: FractalKind
    width: int
    height: int
    max_iterations: int
    palette: Optional[np.ndarray] = None
    viewport: Optional[Viewport2D] = None
    camera: Optional[Camera3D] = None
    shading: ShadingMode = ShadingMode.DISTANCE_ESTIMATION
    frame_id: int = field(default=0, compare=False)

    def __post_init__(self):
        from ..rendering.coloring import validate_palette_array

        object.__setattr__(self, 'kind', FractalKind.parse(self.kind))
        object.__setattr__(self, 'shading', ShadingMode.parse(self.shading))
        object.__setattr__(self, 'max_iterations', validate_iterations(self.max_iterations))

        if self.width <= 0 or self.height <= 0:
            raise ValueError("Width and height must be positive")

        if self.kind.is_3d:
            if self.camera is None:
                raise ValueError("Mandelbulb frames require a camera")
        elif self.viewport is None:
            raise ValueError(f"{self.kind.name} frames require a viewport")
        elif (self.viewport.width, self.viewport.height) != (self.width, self.height):
            raise ValueError(f"Frame size {self.width}x{self.height} does not match the "
                             f"viewport size {self.viewport.width}x{self.viewport.height}")

        if self.palette is None and self.kind is FractalKind.LANDSCAPE:
            # Landscape colours come from its layers, not the palette
            object.__setattr__(self, 'palette', np.zeros((1, 4), dtype=np.float32))
        else:
            object.__setattr__(self, 'palette', validate_palette_array(self.palette))

    @classmethod
    def for_viewport(cls, kind, viewport: Viewport2D, max_iterations: int,
                     palette: Optional[np.ndarray]) -> 'FrameRequest':
        return cls(kind=kind, width=viewport.width, height=viewport.height,
                   max_iterations=max_iterations, palette=palette, viewport=viewport)

    @classmethod
    def for_camera(cls, camera: Camera3D, width: int, height: int, max_iterations: int,
                   palette: np.ndarray,
                   shading=ShadingMode.DISTANCE_ESTIMATION) -> 'FrameRequest':
        return cls(kind=FractalKind.MANDELBULB, width=width, height=height,
                   max_iterations=max_iterations, palette=palette, camera=camera,
                   shading=shading)

    def resized(self, width: int, height: int) -> 'FrameRequest':
        """Copy of the request at another frame size, viewport included."""
        viewport = self.viewport
        if viewport is not None:
            viewport = replace(viewport, width=width, height=height)
        return replace(self, width=width, height=height, viewport=viewport)

    def center_words(self) -> np.ndarray:
        """Viewport centre as [re_hi, re_lo, im_hi, im_lo] float32."""
        if self.viewport is None:
            return np.zeros(4, dtype=np.float32)
        v = self.viewport
        return np.array([v.center_real.high, v.center_real.low,
                         v.center_imag.high, v.center_imag.low], dtype=np.float32)

    def camera_array(self) -> np.ndarray:
        if self.camera is None:
            return Camera3D.default().to_array()
        return self.camera.to_array()

    @property
    def zoom(self) -> float:
        return self.viewport.zoom if self.viewport is not None else 1.0


class FractalRegistry:
    """Lookup of available frame kinds and their descriptions."""

    @classmethod
    def get(cls, name: str) -> FractalKind:
        return FractalKind.parse(name)

    @classmethod
    def list_fractals(cls) -> Dict[str, str]:
        """Get a dictionary of available fractals and their descriptions."""
        return {kind.name.lower(): FRACTAL_DESCRIPTIONS[kind] for kind in FractalKind}

    @classmethod
    def recommended_view(cls, kind: FractalKind) -> Tuple[float, float, float]:
        """Recommended (center_x, center_y, zoom) for a 2D kind."""
        kind = FractalKind.parse(kind)
        return RECOMMENDED_VIEWS.get(kind, (0.0, 0.0, 1.0))


RECOMMENDED_VIEWS: Dict[FractalKind, Tuple[float, float, float]] = {
    FractalKind.MANDELBROT: (-0.5, 0.0, 1.0),
    FractalKind.JULIA: (0.0, 0.0, 1.0),
    FractalKind.BURNING_SHIP: (-0.5, -0.5, 1.0),
    FractalKind.TRICORN: (-0.3, 0.0, 1.0),
    FractalKind.NEWTON: (0.0, 0.0, 1.0),
    FractalKind.PHOENIX: (0.0, 0.0, 1.0),
    FractalKind.BARNSLEY_FERN: (0.0, 0.0, 1.0),
    FractalKind.LANDSCAPE: (0.0, 0.0, 1.0),
}
