"""
Escape-time evaluators for the 2D fractal families.

Each evaluator is a nopython kernel taking the pixel coordinate as two
double-float values (high/low float32 words) and an iteration budget, and
returning ``(escaped, iteration, final_real, final_imag)``. Mandelbrot, Julia
and Tricorn carry the iterate in double-float; Burning Ship, Newton and
Phoenix iterate in float32 on the high word of the coordinate.
"""

import math
import numpy as np
from numba import njit
from typing import Optional, Tuple, Union
from dataclasses import dataclass
import logging

from .precision import ExtendedScalar, split, dd_add, dd_mul, dd_sqr, dd_split
from .fractal_types import FractalKind, Viewport2D, pixel_offset, validate_iterations

logger = logging.getLogger(__name__)

# Kind codes as plain ints for the nopython dispatch
MANDELBROT = int(FractalKind.MANDELBROT)
JULIA = int(FractalKind.JULIA)
BURNING_SHIP = int(FractalKind.BURNING_SHIP)
TRICORN = int(FractalKind.TRICORN)
NEWTON = int(FractalKind.NEWTON)
PHOENIX = int(FractalKind.PHOENIX)
BARNSLEY_FERN = int(FractalKind.BARNSLEY_FERN)

BAILOUT_SQ = 4.0
JULIA_C = (-0.4, 0.6)
PHOENIX_P = 0.56667
NEWTON_EPSILON = 1e-6
FERN_SAMPLES = 100


@njit(cache=True, nogil=True)
def mandelbrot_point(cr_hi, cr_lo, ci_hi, ci_lo, max_iter):
    """z' = z^2 + c with z0 = 0, iterate carried in double-float."""
    zr_hi = np.float32(0.0)
    zr_lo = np.float32(0.0)
    zi_hi = np.float32(0.0)
    zi_lo = np.float32(0.0)
    two = np.float32(2.0)

    for i in range(max_iter):
        zr2_hi, zr2_lo = dd_sqr(zr_hi, zr_lo)
        zi2_hi, zi2_lo = dd_sqr(zi_hi, zi_lo)
        p_hi, p_lo = dd_mul(two * zr_hi, two * zr_lo, zi_hi, zi_lo)
        d_hi, d_lo = dd_add(zr2_hi, zr2_lo, -zi2_hi, -zi2_lo)
        zr_hi, zr_lo = dd_add(d_hi, d_lo, cr_hi, cr_lo)
        zi_hi, zi_lo = dd_add(p_hi, p_lo, ci_hi, ci_lo)

        zr = np.float64(zr_hi) + np.float64(zr_lo)
        zi = np.float64(zi_hi) + np.float64(zi_lo)
        if zr * zr + zi * zi > BAILOUT_SQ:
            return True, i, zr, zi

    return False, max_iter, np.float64(zr_hi) + np.float64(zr_lo), np.float64(zi_hi) + np.float64(zi_lo)


@njit(cache=True, nogil=True)
def julia_point(zr_hi, zr_lo, zi_hi, zi_lo, max_iter):
    """z' = z^2 + c with z0 = pixel and the fixed constant c."""
    cr_hi, cr_lo = dd_split(JULIA_C[0])
    ci_hi, ci_lo = dd_split(JULIA_C[1])
    two = np.float32(2.0)

    for i in range(max_iter):
        zr2_hi, zr2_lo = dd_sqr(zr_hi, zr_lo)
        zi2_hi, zi2_lo = dd_sqr(zi_hi, zi_lo)
        p_hi, p_lo = dd_mul(two * zr_hi, two * zr_lo, zi_hi, zi_lo)
        d_hi, d_lo = dd_add(zr2_hi, zr2_lo, -zi2_hi, -zi2_lo)
        zr_hi, zr_lo = dd_add(d_hi, d_lo, cr_hi, cr_lo)
        zi_hi, zi_lo = dd_add(p_hi, p_lo, ci_hi, ci_lo)

        zr = np.float64(zr_hi) + np.float64(zr_lo)
        zi = np.float64(zi_hi) + np.float64(zi_lo)
        if zr * zr + zi * zi > BAILOUT_SQ:
            return True, i, zr, zi

    return False, max_iter, np.float64(zr_hi) + np.float64(zr_lo), np.float64(zi_hi) + np.float64(zi_lo)


@njit(cache=True, nogil=True)
def tricorn_point(cr_hi, cr_lo, ci_hi, ci_lo, max_iter):
    """z' = conj(z)^2 + c, iterate carried in double-float."""
    zr_hi = np.float32(0.0)
    zr_lo = np.float32(0.0)
    zi_hi = np.float32(0.0)
    zi_lo = np.float32(0.0)
    minus_two = np.float32(-2.0)

    for i in range(max_iter):
        zr2_hi, zr2_lo = dd_sqr(zr_hi, zr_lo)
        zi2_hi, zi2_lo = dd_sqr(zi_hi, zi_lo)
        p_hi, p_lo = dd_mul(minus_two * zr_hi, minus_two * zr_lo, zi_hi, zi_lo)
        d_hi, d_lo = dd_add(zr2_hi, zr2_lo, -zi2_hi, -zi2_lo)
        zr_hi, zr_lo = dd_add(d_hi, d_lo, cr_hi, cr_lo)
        zi_hi, zi_lo = dd_add(p_hi, p_lo, ci_hi, ci_lo)

        zr = np.float64(zr_hi) + np.float64(zr_lo)
        zi = np.float64(zi_hi) + np.float64(zi_lo)
        if zr * zr + zi * zi > BAILOUT_SQ:
            return True, i, zr, zi

    return False, max_iter, np.float64(zr_hi) + np.float64(zr_lo), np.float64(zi_hi) + np.float64(zi_lo)


@njit(cache=True, nogil=True)
def burning_ship_point(cr, ci, max_iter):
    """z' = (|Re z| + i|Im z|)^2 + c in float32."""
    cr = np.float32(cr)
    ci = np.float32(ci)
    zr = np.float32(0.0)
    zi = np.float32(0.0)
    two = np.float32(2.0)

    for i in range(max_iter):
        ar = abs(zr)
        ai = abs(zi)
        zi = np.float32(two * ar * ai + ci)
        zr = np.float32(ar * ar - ai * ai + cr)
        if np.float64(zr) * zr + np.float64(zi) * zi > BAILOUT_SQ:
            return True, i, np.float64(zr), np.float64(zi)

    return False, max_iter, np.float64(zr), np.float64(zi)


@njit(cache=True, nogil=True)
def phoenix_point(cr, ci, max_iter):
    """z' = z^2 + c + p * z_prev in float32."""
    cr = np.float32(cr)
    ci = np.float32(ci)
    p = np.float32(PHOENIX_P)
    zr = np.float32(0.0)
    zi = np.float32(0.0)
    prev_r = np.float32(0.0)
    prev_i = np.float32(0.0)
    two = np.float32(2.0)

    for i in range(max_iter):
        new_r = np.float32(zr * zr - zi * zi + cr + p * prev_r)
        new_i = np.float32(two * zr * zi + ci + p * prev_i)
        prev_r = zr
        prev_i = zi
        zr = new_r
        zi = new_i
        if np.float64(zr) * zr + np.float64(zi) * zi > BAILOUT_SQ:
            return True, i, np.float64(zr), np.float64(zi)

    return False, max_iter, np.float64(zr), np.float64(zi)


@njit(cache=True, nogil=True)
def newton_point(zr, zi, max_iter):
    """
    Newton's method for z^3 - 1 in float32.

    ``escaped`` here means converged: the step fell below the tolerance.
    A vanishing derivative stops the iteration as interior.
    """
    zr = np.float32(zr)
    zi = np.float32(zi)
    eps = np.float32(NEWTON_EPSILON)
    one = np.float32(1.0)
    two = np.float32(2.0)
    three = np.float32(3.0)

    for i in range(max_iter):
        zr2 = np.float32(zr * zr - zi * zi)
        zi2 = np.float32(two * zr * zi)
        # f(z) = z^3 - 1
        fr = np.float32(zr2 * zr - zi2 * zi - one)
        fi = np.float32(zr2 * zi + zi2 * zr)
        # f'(z) = 3z^2
        dr = np.float32(three * zr2)
        di = np.float32(three * zi2)

        denom = np.float32(dr * dr + di * di)
        if denom < eps:
            return False, i, np.float64(zr), np.float64(zi)

        step_r = np.float32((fr * dr + fi * di) / denom)
        step_i = np.float32((fi * dr - fr * di) / denom)
        zr = np.float32(zr - step_r)
        zi = np.float32(zi - step_i)

        if np.float32(step_r * step_r + step_i * step_i) < eps:
            return True, i, np.float64(zr), np.float64(zi)

    return False, max_iter, np.float64(zr), np.float64(zi)


@njit(cache=True, nogil=True)
def fern_density(x, y):
    """Density of the fern approximation curve at (x, y)."""
    density = 0.0
    for i in range(FERN_SAMPLES):
        t = i / FERN_SAMPLES
        fx = math.sin(t * 6.28) * 0.5
        fy = t - 0.5
        dist = math.sqrt((x - fx) ** 2 + (y - fy) ** 2)
        density += math.exp(-dist * 50.0)
    return density


@njit(cache=True, nogil=True)
def smooth_iteration(iteration, mag_sq):
    """Continuous iteration count of an escaped orbit."""
    return iteration + 1.0 - math.log2(math.log2(mag_sq) / 2.0)


@njit(cache=True, nogil=True)
def escape_time_pixel(kind, re_hi, re_lo, im_hi, im_lo, max_iter):
    """
    Dispatch one pixel to its evaluator.

    Returns:
        (interior, iteration, smooth, t, final_real, final_imag) where ``t``
        is the palette input of the pixel
    """
    if kind == MANDELBROT:
        escaped, it, zr, zi = mandelbrot_point(re_hi, re_lo, im_hi, im_lo, max_iter)
    elif kind == JULIA:
        escaped, it, zr, zi = julia_point(re_hi, re_lo, im_hi, im_lo, max_iter)
    elif kind == TRICORN:
        escaped, it, zr, zi = tricorn_point(re_hi, re_lo, im_hi, im_lo, max_iter)
    elif kind == BURNING_SHIP:
        escaped, it, zr, zi = burning_ship_point(re_hi, im_hi, max_iter)
    elif kind == PHOENIX:
        escaped, it, zr, zi = phoenix_point(re_hi, im_hi, max_iter)
    elif kind == NEWTON:
        escaped, it, zr, zi = newton_point(re_hi, im_hi, max_iter)
        t = it / max_iter
        return not escaped, it, np.float64(it), t, zr, zi
    elif kind == BARNSLEY_FERN:
        density = fern_density(np.float64(re_hi), np.float64(im_hi))
        t = min(max(density, 0.0), 1.0)
        return False, 0, density, t, np.float64(re_hi), np.float64(im_hi)
    else:
        return True, 0, 0.0, 0.0, 0.0, 0.0

    if not escaped:
        return True, it, np.float64(it), 1.0, zr, zi
    smooth = smooth_iteration(it, zr * zr + zi * zi)
    return False, it, smooth, smooth / max_iter, zr, zi


@njit(cache=True, nogil=True)
def _evaluate_field(kind, center, width, height, span, max_iter,
                    iterations, smooth, interior):
    for y in range(height):
        for x in range(width):
            ox, oy = pixel_offset(x, y, width, height, span)
            re_hi, re_lo = dd_add(center[0], center[1], ox, np.float32(0.0))
            im_hi, im_lo = dd_add(center[2], center[3], oy, np.float32(0.0))
            inside, it, s, _t, _zr, _zi = escape_time_pixel(kind, re_hi, re_lo, im_hi, im_lo, max_iter)
            iterations[y, x] = it
            smooth[y, x] = s
            interior[y, x] = inside


@dataclass(frozen=True)
class EscapeTimeResult:
    """Result of evaluating one point."""

    iterations: int
    smooth_value: float
    interior: bool
    final_z: complex
    palette_input: float = 0.0

    def normalized(self, max_iter: int) -> float:
        """Smooth value normalised by the iteration budget."""
        return self.smooth_value / max_iter


class IterationField:
    """Per-pixel escape-time results for a whole viewport."""

    def __init__(self, iterations: np.ndarray, smooth: np.ndarray, interior: np.ndarray):
        self.iterations = iterations
        self.smooth = smooth
        self.interior = interior
        self.shape = iterations.shape

    def get_normalized_iterations(self, max_iter: int) -> np.ndarray:
        """Smooth values scaled to [0, 1], interior pixels at 1."""
        values = np.where(self.interior, float(max_iter), self.smooth) / max_iter
        return np.clip(values, 0.0, 1.0)


Coordinate = Union[ExtendedScalar, float]


def _coordinate(value: Coordinate) -> ExtendedScalar:
    if isinstance(value, ExtendedScalar):
        return value
    return split(value)


def evaluate_point(kind: Union[FractalKind, str], real: Coordinate, imag: Coordinate,
                   max_iterations: int) -> EscapeTimeResult:
    """
    Evaluate a single complex-plane point.

    Args:
        kind: 2D fractal kind
        real, imag: Coordinate as floats or extended scalars
        max_iterations: Iteration budget in [1, 10000]

    Returns:
        EscapeTimeResult for the point
    """
    kind = FractalKind.parse(kind)
    if kind in (FractalKind.MANDELBULB, FractalKind.LANDSCAPE):
        raise ValueError(f"{kind.name} is not an escape-time fractal")
    max_iterations = validate_iterations(max_iterations)

    re = _coordinate(real)
    im = _coordinate(imag)
    inside, it, s, t, zr, zi = escape_time_pixel(int(kind), re.high, re.low, im.high, im.low,
                                                 max_iterations)
    return EscapeTimeResult(iterations=int(it), smooth_value=float(s), interior=bool(inside),
                            final_z=complex(zr, zi), palette_input=float(t))


class EscapeTimeEvaluator:
    """Evaluates a 2D fractal kind over points or whole viewports."""

    def __init__(self, kind: Union[FractalKind, str], max_iter: int = 2048):
        """
        Initialize the evaluator.

        Args:
            kind: 2D fractal kind
            max_iter: Iteration budget
        """
        self.kind = FractalKind.parse(kind)
        if self.kind in (FractalKind.MANDELBULB, FractalKind.LANDSCAPE):
            raise ValueError(f"{self.kind.name} is not an escape-time fractal")
        self.max_iter = validate_iterations(max_iter)

    def evaluate(self, real: Coordinate, imag: Coordinate) -> EscapeTimeResult:
        return evaluate_point(self.kind, real, imag, self.max_iter)

    def evaluate_pixel(self, viewport: Viewport2D, x: int, y: int) -> EscapeTimeResult:
        re, im = viewport.pixel_coordinate(x, y)
        return evaluate_point(self.kind, re, im, self.max_iter)

    def evaluate_viewport(self, viewport: Viewport2D) -> IterationField:
        """Evaluate every pixel of a viewport."""
        shape = (viewport.height, viewport.width)
        iterations = np.zeros(shape, dtype=np.int32)
        smooth = np.zeros(shape, dtype=np.float64)
        interior = np.zeros(shape, dtype=np.bool_)
        center = np.array([viewport.center_real.high, viewport.center_real.low,
                           viewport.center_imag.high, viewport.center_imag.low],
                          dtype=np.float32)

        _evaluate_field(int(self.kind), center, viewport.width, viewport.height,
                        viewport.scale, self.max_iter, iterations, smooth, interior)

        logger.debug(f"Evaluated {self.kind.name} field {shape}, "
                     f"{int(interior.sum())} interior pixels")
        return IterationField(iterations, smooth, interior)
