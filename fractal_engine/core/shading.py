"""
Shading of ray-marched Mandelbulb pixels.

Three modes turn a march result into a colour: a palette lookup keyed by
distance and step count, two-light diffuse shading, and a full lighting
model with soft shadows, ambient occlusion, specular highlights and an
environment gradient.
"""

import math
import numpy as np
from numba import njit
from typing import Union
import logging

from .fractal_types import Camera3D, ShadingMode
from .raymarch import MAX_STEPS, mandelbulb_de, march_ray, primary_ray, surface_normal
from ..rendering.coloring import sample_palette, validate_palette_array

logger = logging.getLogger(__name__)

DISTANCE_ESTIMATION = int(ShadingMode.DISTANCE_ESTIMATION)
SIMPLE_SHADING = int(ShadingMode.SIMPLE_SHADING)
RAY_TRACED = int(ShadingMode.RAY_TRACED)


def _normalized(x, y, z):
    length = math.sqrt(x * x + y * y + z * z)
    return x / length, y / length, z / length


LIGHT_1 = _normalized(1.0, 1.0, 1.0)
LIGHT_2 = _normalized(-0.5, 0.5, -1.0)
SKY_COLOR = (0.8, 0.85, 0.9)
GROUND_COLOR = (0.15, 0.15, 0.2)

SHADOW_START = 0.02
SHADOW_STEPS = 16
SHADOW_HIT = 0.001
SHADOW_MAX_DISTANCE = 2.5
SHADOW_SHARPNESS = 8.0
SURFACE_OFFSET = 0.001
AO_SAMPLES = 5
SPECULAR_EXPONENT = 32.0


@njit(cache=True, nogil=True)
def fract(x):
    return x - math.floor(x)


@njit(cache=True, nogil=True)
def clamp01(x):
    return min(max(x, 0.0), 1.0)


@njit(cache=True, nogil=True)
def environment_color(dx, dy, dz):
    """Vertical ground-to-sky gradient seen along a direction."""
    t = dy * 0.5 + 0.5
    r = GROUND_COLOR[0] + (SKY_COLOR[0] - GROUND_COLOR[0]) * t
    g = GROUND_COLOR[1] + (SKY_COLOR[1] - GROUND_COLOR[1]) * t
    b = GROUND_COLOR[2] + (SKY_COLOR[2] - GROUND_COLOR[2]) * t
    return r, g, b


@njit(cache=True, nogil=True)
def ambient_occlusion(px, py, pz, nx, ny, nz, power, max_iter):
    """Occlusion factor in [0, 1] from distance samples along the normal."""
    occlusion = 0.0
    scale = 1.0
    for i in range(AO_SAMPLES):
        h = 0.01 + 0.12 * i / 4.0
        d = mandelbulb_de(px + nx * h, py + ny * h, pz + nz * h, power, max_iter)[0]
        occlusion += (h - d) * scale
        scale *= 0.95
    return clamp01(1.0 - 3.0 * occlusion)


@njit(cache=True, nogil=True)
def soft_shadow(px, py, pz, lx, ly, lz, power, max_iter):
    """Penumbra factor toward a light; 0 when the light is blocked."""
    res = 1.0
    t = SHADOW_START
    for _ in range(SHADOW_STEPS):
        h = mandelbulb_de(px + lx * t, py + ly * t, pz + lz * t, power, max_iter)[0]
        if h < SHADOW_HIT:
            return 0.0
        res = min(res, SHADOW_SHARPNESS * h / t)
        t += h
        if t > SHADOW_MAX_DISTANCE:
            break
    return clamp01(res)


@njit(cache=True, nogil=True)
def _specular(nx, ny, nz, lx, ly, lz, vx, vy, vz):
    hx = lx + vx
    hy = ly + vy
    hz = lz + vz
    length = math.sqrt(hx * hx + hy * hy + hz * hz)
    if length == 0.0:
        return 0.0
    ndoth = (nx * hx + ny * hy + nz * hz) / length
    return max(ndoth, 0.0) ** SPECULAR_EXPONENT


@njit(cache=True, nogil=True)
def shade_mandelbulb(mode, palette, ox, oy, oz, dx, dy, dz, power, max_iter):
    """
    March one view ray and shade it.

    Returns:
        (r, g, b, a) floats in [0, 1]
    """
    hit, t, steps, final_r = march_ray(ox, oy, oz, dx, dy, dz, power, max_iter)

    if not hit:
        if mode == RAY_TRACED:
            r, g, b = environment_color(dx, dy, dz)
            return r, g, b, 1.0
        return 0.0, 0.0, 0.0, 1.0

    px = ox + dx * t
    py = oy + dy * t
    pz = oz + dz * t
    dist_from_origin = math.sqrt(px * px + py * py + pz * pz)

    if mode == DISTANCE_ESTIMATION:
        key = fract(dist_from_origin * 0.5 + steps / MAX_STEPS * 0.3 + final_r * 0.2)
        r, g, b, _a = sample_palette(palette, key)
        return r, g, b, 1.0

    br, bg, bb, _a = sample_palette(palette, fract(dist_from_origin * 0.5))
    nx, ny, nz = surface_normal(px, py, pz, power, max_iter)
    d1 = max(nx * LIGHT_1[0] + ny * LIGHT_1[1] + nz * LIGHT_1[2], 0.0)
    d2 = max(nx * LIGHT_2[0] + ny * LIGHT_2[1] + nz * LIGHT_2[2], 0.0)

    if mode == SIMPLE_SHADING:
        intensity = clamp01(0.2 + 0.7 * d1 + 0.3 * d2)
        return br * intensity, bg * intensity, bb * intensity, 1.0

    sx = px + nx * SURFACE_OFFSET
    sy = py + ny * SURFACE_OFFSET
    sz = pz + nz * SURFACE_OFFSET
    s1 = soft_shadow(sx, sy, sz, LIGHT_1[0], LIGHT_1[1], LIGHT_1[2], power, max_iter)
    s2 = soft_shadow(sx, sy, sz, LIGHT_2[0], LIGHT_2[1], LIGHT_2[2], power, max_iter)
    ao = ambient_occlusion(px, py, pz, nx, ny, nz, power, max_iter)

    spec1 = _specular(nx, ny, nz, LIGHT_1[0], LIGHT_1[1], LIGHT_1[2], -dx, -dy, -dz)
    spec2 = _specular(nx, ny, nz, LIGHT_2[0], LIGHT_2[1], LIGHT_2[2], -dx, -dy, -dz)

    # reflect(d, n) = d - 2 (d.n) n
    ddotn = dx * nx + dy * ny + dz * nz
    er, eg, eb = environment_color(dx - 2.0 * ddotn * nx, dy - 2.0 * ddotn * ny,
                                   dz - 2.0 * ddotn * nz)

    direct = d1 * s1 * 0.7 + spec1 * s1 * 0.3 + d2 * s2 * 0.4 + spec2 * s2 * 0.2
    ambient = 0.3 * ao
    return (clamp01(br * direct + er * ambient * br),
            clamp01(bg * direct + eg * ambient * bg),
            clamp01(bb * direct + eb * ambient * bb),
            1.0)


@njit(cache=True, nogil=True)
def shade_pixel(mode, palette, camera, x, y, width, height, max_iter):
    """Colour of pixel (x, y) for a packed camera array."""
    dx, dy, dz = primary_ray(camera[3], camera[4], camera[5],
                             np.float64(x), np.float64(y), np.float64(width), np.float64(height))
    return shade_mandelbulb(mode, palette, camera[0], camera[1], camera[2],
                            dx, dy, dz, camera[6], max_iter)


def shade_ray(mode: Union[ShadingMode, str], camera: Camera3D, palette: np.ndarray,
              x: int, y: int, width: int, height: int, max_iterations: int) -> np.ndarray:
    """
    Shade a single Mandelbulb pixel.

    Returns:
        float64 RGBA array of shape (4,)
    """
    mode = ShadingMode.parse(mode)
    palette = validate_palette_array(palette)
    rgba = shade_pixel(int(mode), palette, camera.to_array(), x, y, width, height,
                       int(max_iterations))
    return np.array(rgba, dtype=np.float64)
