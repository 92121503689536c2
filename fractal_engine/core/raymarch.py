"""
Mandelbulb distance estimator and sphere-tracing ray marcher.

All vectors are passed to the nopython kernels as scalar components or
small tuples so that no arrays are allocated per sample.
"""

import math
import numpy as np
from numba import njit
from typing import Optional, Sequence, Tuple
from dataclasses import dataclass
import logging

from .fractal_types import Camera3D

logger = logging.getLogger(__name__)

MAX_STEPS = 256
MAX_DISTANCE = 20.0
HIT_THRESHOLD = 1e-4
STEP_FACTOR = 0.5
NORMAL_EPSILON = 1e-4
ESCAPE_RADIUS = 2.0


@njit(cache=True, nogil=True)
def mandelbulb_de(px, py, pz, power, max_iter):
    """
    Distance estimate from (px, py, pz) to the Mandelbulb surface.

    Returns:
        (distance, iterations, final_radius). An orbit pinned at the origin
        is interior with distance 0.
    """
    zx = px
    zy = py
    zz = pz
    dr = 1.0
    r = 0.0
    iterations = 0

    for i in range(max_iter):
        r = math.sqrt(zx * zx + zy * zy + zz * zz)
        if r > ESCAPE_RADIUS:
            iterations = i
            break
        if r == 0.0:
            return 0.0, i, 0.0

        theta = math.acos(min(max(zz / r, -1.0), 1.0))
        phi = math.atan2(zy, zx)
        dr = r ** (power - 1.0) * power * dr + 1.0

        zr = r ** power
        theta = theta * power
        phi = phi * power

        zx = zr * math.sin(theta) * math.cos(phi) + px
        zy = zr * math.sin(phi) * math.sin(theta) + py
        zz = zr * math.cos(theta) + pz
        iterations = i

    if r == 0.0:
        return 0.0, iterations, 0.0
    return 0.5 * math.log(r) * r / dr, iterations, r


@njit(cache=True, nogil=True)
def basis(yaw, pitch):
    """Camera (forward, right, up) unit vectors from yaw and pitch."""
    cy = math.cos(yaw)
    sy = math.sin(yaw)
    cp = math.cos(pitch)
    sp = math.sin(pitch)

    fx, fy, fz = sy * cp, sp, -cy * cp
    rx, ry, rz = cy, 0.0, sy
    ux = ry * fz - rz * fy
    uy = rz * fx - rx * fz
    uz = rx * fy - ry * fx
    return (fx, fy, fz), (rx, ry, rz), (ux, uy, uz)


@njit(cache=True, nogil=True)
def primary_ray(yaw, pitch, fov, x, y, width, height):
    """Normalised view-ray direction through pixel (x, y)."""
    aspect = width / height
    u = (x / width - 0.5) * aspect * fov
    v = (y / height - 0.5) * fov
    f, r, up = basis(yaw, pitch)

    dx = f[0] + u * r[0] + v * up[0]
    dy = f[1] + u * r[1] + v * up[1]
    dz = f[2] + u * r[2] + v * up[2]
    length = math.sqrt(dx * dx + dy * dy + dz * dz)
    return dx / length, dy / length, dz / length


@njit(cache=True, nogil=True)
def march_ray(ox, oy, oz, dx, dy, dz, power, max_iter):
    """
    Sphere-trace along a ray.

    Returns:
        (hit, t, steps, final_radius) where ``t`` is the distance travelled
    """
    t = 0.0
    steps = 0
    final_r = 0.0

    for step in range(MAX_STEPS):
        distance, _it, final_r = mandelbulb_de(ox + dx * t, oy + dy * t, oz + dz * t,
                                               power, max_iter)
        steps = step
        if distance < HIT_THRESHOLD:
            return True, t, steps, final_r
        t += distance * STEP_FACTOR
        if t > MAX_DISTANCE:
            break

    return False, t, steps, final_r


@njit(cache=True, nogil=True)
def surface_normal(px, py, pz, power, max_iter):
    """Unit normal by central differences of the distance estimate."""
    e = NORMAL_EPSILON
    nx = (mandelbulb_de(px + e, py, pz, power, max_iter)[0]
          - mandelbulb_de(px - e, py, pz, power, max_iter)[0])
    ny = (mandelbulb_de(px, py + e, pz, power, max_iter)[0]
          - mandelbulb_de(px, py - e, pz, power, max_iter)[0])
    nz = (mandelbulb_de(px, py, pz + e, power, max_iter)[0]
          - mandelbulb_de(px, py, pz - e, power, max_iter)[0])
    length = math.sqrt(nx * nx + ny * ny + nz * nz)
    if length == 0.0:
        return 0.0, 1.0, 0.0
    return nx / length, ny / length, nz / length


@dataclass(frozen=True)
class MarchResult:
    """Outcome of marching one ray."""

    hit: bool
    distance: float
    steps: int
    final_radius: float
    position: Tuple[float, float, float]
    normal: Optional[Tuple[float, float, float]] = None


def mandelbulb_distance(point: Sequence[float], power: float = 8.0,
                        max_iterations: int = 64) -> Tuple[float, int, float]:
    """
    Evaluate the Mandelbulb distance estimator at a point.

    Args:
        point: (x, y, z) world position
        power: Mandelbulb exponent
        max_iterations: Orbit iteration cap

    Returns:
        Tuple of (distance, iterations, final_radius)
    """
    x, y, z = (float(v) for v in point)
    distance, iterations, final_r = mandelbulb_de(x, y, z, float(power), int(max_iterations))
    return float(distance), int(iterations), float(final_r)


def camera_basis(yaw: float, pitch: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Camera (forward, right, up) vectors as arrays."""
    f, r, u = basis(float(yaw), float(pitch))
    return np.array(f), np.array(r), np.array(u)


def ray_direction(camera: Camera3D, x: float, y: float, width: int, height: int) -> np.ndarray:
    """Normalised direction of the view ray through pixel (x, y)."""
    d = primary_ray(camera.yaw, camera.pitch, camera.field_of_view,
                    float(x), float(y), float(width), float(height))
    return np.array(d)


def march(origin: Sequence[float], direction: Sequence[float], power: float = 8.0,
          max_iterations: int = 64, with_normal: bool = True) -> MarchResult:
    """
    March one ray against the Mandelbulb.

    Args:
        origin: Ray origin
        direction: Unit ray direction
        power: Mandelbulb exponent
        max_iterations: Orbit iteration cap of the distance estimator
        with_normal: Compute the surface normal on a hit

    Returns:
        MarchResult; ``normal`` is None on a miss
    """
    ox, oy, oz = (float(v) for v in origin)
    dx, dy, dz = (float(v) for v in direction)
    hit, t, steps, final_r = march_ray(ox, oy, oz, dx, dy, dz, float(power), int(max_iterations))
    position = (ox + dx * t, oy + dy * t, oz + dz * t)

    normal = None
    if hit and with_normal:
        normal = tuple(float(v) for v in surface_normal(*position, float(power), int(max_iterations)))

    return MarchResult(hit=bool(hit), distance=float(t), steps=int(steps),
                       final_radius=float(final_r), position=position, normal=normal)
